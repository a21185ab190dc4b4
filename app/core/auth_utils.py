"""Authentication and authorization utilities"""
from fastapi import HTTPException
from typing import Optional
from app.core.enums import UserRole


def filter_by_user(query, model, current_user):

    if current_user.role == UserRole.CUSTOMER:
        return query.where(model.customer_id == int(current_user.id))
    if current_user.role == UserRole.VENDOR:
        return query.where(model.vendor_id == int(current_user.id))
    return query


def check_ownership(order, current_user, resource_name: str = "Order") -> None:

    if current_user.role == UserRole.CUSTOMER and order.customer_id != int(current_user.id):
        raise HTTPException(
            status_code=403,
            detail=f"Forbidden: You can only access your own {resource_name}s"
        )
    if current_user.role == UserRole.VENDOR and order.vendor_id != int(current_user.id):
        raise HTTPException(
            status_code=403,
            detail=f"Forbidden: You can only access {resource_name}s assigned to you"
        )


def check_not_found(item, resource_name: str = "Resource", resource_id: Optional[str] = None) -> None:

    if not item:
        if resource_id:
            raise HTTPException(
                status_code=404,
                detail=f"{resource_name} for {resource_id} not found"
            )
        raise HTTPException(status_code=404, detail=f"{resource_name} not found")
