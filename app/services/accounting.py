"""Accounting document collaborator.

``AccountingClient`` is the port the document sync depends on.
``ZohoBooksClient`` implements it against the Zoho Books v3 REST API.
"""
import logging
import time
from abc import ABC, abstractmethod
from datetime import date
from typing import Optional

import httpx

from app.core.config import settings
from app.core.enums import DocumentKind
from app.core.exceptions import ExternalCollaboratorFailure
from app.core.metrics import track_external_call

logger = logging.getLogger(__name__)

# kind -> (collection path, response key, id field)
DOCUMENT_ENDPOINTS = {
    DocumentKind.QUOTE: ("estimates", "estimate", "estimate_id"),
    DocumentKind.SALES_ORDER: ("salesorders", "salesorder", "salesorder_id"),
    DocumentKind.INVOICE: ("invoices", "invoice", "invoice_id"),
}


class AccountingClient(ABC):
    @abstractmethod
    async def ensure_customer(self, profile) -> str:
        ...

    @abstractmethod
    async def create_quote(self, order, customer_id: str) -> str:
        ...

    @abstractmethod
    async def create_sales_order(self, order, vendor, customer_id: str) -> str:
        ...

    @abstractmethod
    async def create_invoice(self, order, payment, vendor, customer_id: str) -> str:
        ...

    @abstractmethod
    async def email_document(self, kind: DocumentKind, document_id: str, to_email: Optional[str] = None) -> bool:
        ...

    @abstractmethod
    async def fetch_pdf(self, kind: DocumentKind, document_id: str) -> bytes:
        ...


def build_line_items(order) -> list:
    lines = []
    for item in order.items:
        inventory = item.inventory_item
        if inventory is not None and inventory.external_item_id:
            lines.append({"item_id": inventory.external_item_id, "rate": item.unit_price, "quantity": item.quantity})
        else:
            name = (item.description or item.item_name or "Item").strip()[:255] or "Item"
            lines.append({"name": name, "rate": item.unit_price, "quantity": item.quantity})
    return lines


def document_payload(order, customer_id: str) -> dict:
    payload = {
        "customer_id": customer_id,
        "date": date.today().isoformat(),
        "reference_number": order.lead_id,
        "line_items": build_line_items(order),
        "is_inclusive_tax": True,
    }
    if order.delivery_charge and order.delivery_charge > 0:
        payload["shipping_charge"] = f"{order.delivery_charge:.2f}"
    return payload


class ZohoBooksClient(AccountingClient):
    """Zoho Books over httpx.

    Access tokens are refreshed through the OAuth refresh-token grant and kept
    for ``ZOHO_TOKEN_TTL`` seconds. Before creating a document the client looks
    it up by ``reference_number`` (the lead id) and reuses a match, so a retry
    after a lost response does not create a duplicate.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        organization_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or settings.ZOHO_BOOKS_BASE_URL).rstrip("/")
        self.organization_id = organization_id or settings.ZOHO_ORGANIZATION_ID
        self.transport = transport
        self.timeout = timeout or settings.EXTERNAL_CALL_TIMEOUT
        self._access_token: Optional[str] = None
        self._token_expiry = 0.0

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def _get_access_token(self) -> str:
        if self._access_token and time.monotonic() < self._token_expiry:
            return self._access_token
        if not settings.ZOHO_REFRESH_TOKEN:
            raise ExternalCollaboratorFailure("accounting", "auth", "refresh token not configured")

        params = {
            "refresh_token": settings.ZOHO_REFRESH_TOKEN,
            "client_id": settings.ZOHO_CLIENT_ID,
            "client_secret": settings.ZOHO_CLIENT_SECRET,
            "grant_type": "refresh_token",
        }
        try:
            async with self._client() as client:
                response = await client.post(settings.ZOHO_ACCOUNTS_URL, params=params)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            raise ExternalCollaboratorFailure("accounting", "auth", str(e))
        except ValueError:
            raise ExternalCollaboratorFailure("accounting", "auth", "token response is not JSON")
        if not isinstance(data, dict):
            raise ExternalCollaboratorFailure("accounting", "auth", "unexpected token response")

        token = data.get("access_token")
        if not token:
            raise ExternalCollaboratorFailure("accounting", "auth", data.get("error", "no access token returned"))
        self._access_token = token
        self._token_expiry = time.monotonic() + settings.ZOHO_TOKEN_TTL
        logger.info("Zoho Books access token refreshed")
        return token

    async def _request(self, method: str, path: str, json: Optional[dict] = None, params: Optional[dict] = None) -> httpx.Response:
        token = await self._get_access_token()
        headers = {
            "Authorization": f"Zoho-oauthtoken {token}",
            "X-com-zoho-books-organizationid": self.organization_id,
        }
        query = {"organization_id": self.organization_id}
        if params:
            query.update(params)
        try:
            async with self._client() as client:
                response = await client.request(method, f"{self.base_url}/{path}", headers=headers, params=query, json=json)
        except httpx.TimeoutException:
            raise ExternalCollaboratorFailure("accounting", f"{method} {path}", "timeout")
        except httpx.HTTPError as e:
            raise ExternalCollaboratorFailure("accounting", f"{method} {path}", str(e))

        if response.status_code >= 400:
            raise ExternalCollaboratorFailure(
                "accounting", f"{method} {path}", f"status {response.status_code}: {response.text[:200]}"
            )
        return response

    async def _json(self, method: str, path: str, json: Optional[dict] = None, params: Optional[dict] = None) -> dict:
        response = await self._request(method, path, json=json, params=params)
        try:
            data = response.json()
        except ValueError:
            raise ExternalCollaboratorFailure("accounting", f"{method} {path}", f"status {response.status_code}, response is not JSON")
        if not isinstance(data, dict):
            raise ExternalCollaboratorFailure("accounting", f"{method} {path}", "unexpected response body")
        if data.get("code", 0) != 0:
            raise ExternalCollaboratorFailure("accounting", f"{method} {path}", data.get("message", "error code"))
        return data

    @track_external_call("accounting", "ensure_customer")
    async def ensure_customer(self, profile) -> str:
        if profile.external_customer_id:
            return profile.external_customer_id

        if profile.email:
            data = await self._json("GET", "contacts", params={"email": profile.email})
            for contact in data.get("contacts", []):
                if (contact.get("email") or "").lower() == profile.email.lower() and contact.get("contact_id"):
                    logger.info(f"Found existing accounting contact {contact['contact_id']} for user {profile.id}")
                    return contact["contact_id"]

        name = (profile.name or profile.username or "Customer").strip()[:100]
        contact = {"contact_name": name, "contact_type": "customer", "customer_sub_type": "business"}
        if profile.email:
            contact["email"] = profile.email.strip()[:100]
        if profile.phone:
            contact["phone"] = profile.phone.strip()[:50]
        if profile.company_name:
            contact["company_name"] = profile.company_name.strip()[:200]

        data = await self._json("POST", "contacts", json=contact)
        contact_id = (data.get("contact") or {}).get("contact_id")
        if not contact_id:
            raise ExternalCollaboratorFailure("accounting", "ensure_customer", "no contact id returned")
        logger.info(f"Created accounting contact {contact_id} for user {profile.id}")
        return contact_id

    async def find_by_reference(self, kind: DocumentKind, reference: str) -> Optional[str]:
        path, _, id_field = DOCUMENT_ENDPOINTS[kind]
        data = await self._json("GET", path, params={"reference_number": reference})
        for document in data.get(path, []):
            if document.get("reference_number") == reference and document.get(id_field):
                return document[id_field]
        return None

    async def _create(self, kind: DocumentKind, order, payload: dict) -> str:
        existing = await self.find_by_reference(kind, order.lead_id)
        if existing:
            logger.info(f"{kind} for order {order.lead_id} already exists remotely as {existing}")
            return existing

        path, key, id_field = DOCUMENT_ENDPOINTS[kind]
        data = await self._json("POST", path, json=payload)
        document_id = (data.get(key) or {}).get(id_field)
        if not document_id:
            raise ExternalCollaboratorFailure("accounting", f"create {kind}", "no document id returned")
        return document_id

    @track_external_call("accounting", "create_quote")
    async def create_quote(self, order, customer_id: str) -> str:
        return await self._create(DocumentKind.QUOTE, order, document_payload(order, customer_id))

    @track_external_call("accounting", "create_sales_order")
    async def create_sales_order(self, order, vendor, customer_id: str) -> str:
        payload = document_payload(order, customer_id)
        if order.delivery_expected_date:
            payload["shipment_date"] = order.delivery_expected_date.date().isoformat()
        return await self._create(DocumentKind.SALES_ORDER, order, payload)

    @track_external_call("accounting", "create_invoice")
    async def create_invoice(self, order, payment, vendor, customer_id: str) -> str:
        payload = document_payload(order, customer_id)
        if payment is not None and payment.transaction_id:
            payload["notes"] = f"Payment {payment.transaction_id} via {payment.payment_type}"
        return await self._create(DocumentKind.INVOICE, order, payload)

    @track_external_call("accounting", "email_document")
    async def email_document(self, kind: DocumentKind, document_id: str, to_email: Optional[str] = None) -> bool:
        path = DOCUMENT_ENDPOINTS[kind][0]
        body = {"to_mail_ids": [to_email]} if to_email else {}
        await self._json("POST", f"{path}/{document_id}/email", json=body)
        return True

    @track_external_call("accounting", "fetch_pdf")
    async def fetch_pdf(self, kind: DocumentKind, document_id: str) -> bytes:
        path = DOCUMENT_ENDPOINTS[kind][0]
        response = await self._request("GET", f"{path}/{document_id}", params={"accept": "pdf"})
        return response.content
