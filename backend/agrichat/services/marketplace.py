# /agrichat/services/marketplace.py

import httpx
import logging
import tenacity
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from agrichat.config.settings import settings
from agrichat.models.session import SessionUser
from agrichat.utils.circuit_breaker import CircuitBreaker, CircuitOpenError

# Narrow interface to the marketplace backend: the business operations the
# conversation performs as side effects. Every call either returns the
# backend's JSON or raises BusinessError; handlers decide what the user sees.

logger = logging.getLogger(__name__)


class BusinessError(Exception):
    def __init__(self, operation: str, detail: str = "", status: Optional[int] = None):
        super().__init__(f"{operation} failed ({status}): {detail}" if status else f"{operation} failed: {detail}")
        self.operation = operation
        self.detail = detail
        self.status = status


class MarketplaceFacade(ABC):
    # ---------------- Users and organizations ---------------- #

    @abstractmethod
    async def find_user_by_phone(self, phone_e164: str) -> Optional[Dict[str, Any]]:
        """Returns the user record (id, email, fullname, email_verified) or None."""

    @abstractmethod
    async def get_user_membership(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Returns {"organization_id", "account_type"} for the user's first organization."""

    @abstractmethod
    async def create_user(self, payload: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def update_user(self, user_id: str, payload: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def create_organization(self, payload: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def ensure_org_admin(self, user_id: str, org_id: str) -> None: ...

    @abstractmethod
    async def update_organization(self, org_id: str, payload: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def verify_user_email(self, token: str) -> bool: ...

    # ---------------- Seller operations ---------------- #

    @abstractmethod
    async def create_product(self, actor: SessionUser, payload: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_seller_products(self, actor: SessionUser, page: int, limit: int) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def get_seller_product(self, actor: SessionUser, product_id: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    async def create_harvest_request(self, actor: SessionUser, payload: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_product_requests(self, actor: SessionUser, page: int, limit: int) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def create_quote(self, actor: SessionUser, request_id: str, payload: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def acknowledge_harvest_buyer_request(
        self, actor: SessionUser, request_id: str, payload: Dict[str, Any]
    ) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_orders(self, actor: SessionUser, status: str, page: int, limit: int) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def accept_order(self, actor: SessionUser, order_id: str, payload: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def reject_order(self, actor: SessionUser, order_id: str, payload: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def update_order_status(self, actor: SessionUser, order_id: str, payload: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_transactions(self, actor: SessionUser, page: int, limit: int) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def get_transaction(self, actor: SessionUser, transaction_id: str) -> Optional[Dict[str, Any]]: ...

    # ---------------- Buyer operations ---------------- #

    @abstractmethod
    async def browse_marketplace(self, actor: SessionUser, page: int, limit: int) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def get_marketplace_product(self, actor: SessionUser, product_id: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    async def get_seller_profile(self, actor: SessionUser, seller_org_id: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    async def add_to_cart(self, actor: SessionUser, product_id: str, quantity: int = 1) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_cart(self, actor: SessionUser) -> Dict[str, Any]: ...

    # ---------------- Storage, knowledge and audit ---------------- #

    @abstractmethod
    async def create_signed_upload_url(self, bucket: str, object_path: str) -> str: ...

    @abstractmethod
    async def search_knowledge(self, org_id: str, question: str, scopes: List[str]) -> List[Dict[str, Any]]:
        """Returns context snippets [{"title", "content"}] for help answers."""

    @abstractmethod
    async def index_context(self, org_id: str, scope: str, ref_id: Optional[str], title: str, content: str,
                            metadata: Optional[Dict[str, Any]] = None) -> None:
        """Adds a conversation outcome to the organization's help knowledge."""

    @abstractmethod
    async def record_audit(self, event: str, meta: Dict[str, Any]) -> None: ...


class HttpMarketplaceFacade(MarketplaceFacade):
    """Calls the marketplace REST API with the channel's service key."""

    def __init__(self, base_url: str, service_key: Optional[str]):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.circuit_breaker = CircuitBreaker("marketplace")
        self.http_client = httpx.AsyncClient(timeout=httpx.Timeout(10.0, read=30.0, connect=5.0))

    def _headers(self, actor: Optional[SessionUser]) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {self.service_key or ''}"}
        if actor:
            headers["X-Acting-User"] = actor.id
            if actor.org_id:
                headers["X-Organization-Id"] = actor.org_id
        return headers

    @tenacity.retry(
        retry=tenacity.retry_if_exception_type((httpx.RequestError, httpx.TimeoutException)),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=2, min=1, max=10),
        before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def resilient_api_call(self, func, *args, **kwargs):
        return await func(*args, **kwargs)

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        actor: Optional[SessionUser] = None,
        allow_404: bool = False,
        **kwargs: Any,
    ) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = await self.circuit_breaker.call(
                self.resilient_api_call, self.http_client.request, method, url, headers=self._headers(actor), **kwargs
            )
        except CircuitOpenError as e:
            raise BusinessError(operation, str(e)) from e
        except httpx.HTTPError as e:
            raise BusinessError(operation, f"network error: {e}") from e

        if allow_404 and response.status_code == 404:
            return None
        if response.status_code >= 400:
            try:
                detail = (response.json() or {}).get("message") or response.text[:200]
            except ValueError:
                detail = response.text[:200]
            raise BusinessError(operation, str(detail), response.status_code)
        if not response.content:
            return {}
        return response.json()

    @staticmethod
    def _items(body: Any, key: str) -> List[Dict[str, Any]]:
        if isinstance(body, list):
            return body
        return list((body or {}).get(key) or [])

    # ---------------- Users and organizations ---------------- #

    async def find_user_by_phone(self, phone_e164):
        return await self._request("find_user_by_phone", "GET", "/users/by-phone",
                                   params={"phone": phone_e164}, allow_404=True)

    async def get_user_membership(self, user_id):
        body = await self._request("get_user_membership", "GET", f"/users/{user_id}/organization", allow_404=True)
        if not body:
            return None
        return {"organization_id": body.get("organization_id"), "account_type": body.get("account_type")}

    async def create_user(self, payload):
        return await self._request("create_user", "POST", "/users", json=payload)

    async def update_user(self, user_id, payload):
        return await self._request("update_user", "PATCH", f"/users/{user_id}", json=payload)

    async def create_organization(self, payload):
        return await self._request("create_organization", "POST", "/organizations", json=payload)

    async def ensure_org_admin(self, user_id, org_id):
        await self._request("ensure_org_admin", "PUT", f"/organizations/{org_id}/admins/{user_id}")

    async def update_organization(self, org_id, payload):
        return await self._request("update_organization", "PATCH", f"/organizations/{org_id}", json=payload)

    async def verify_user_email(self, token):
        body = await self._request("verify_user_email", "POST", "/auth/verify-email", json={"token": token})
        return bool((body or {}).get("verified", True))

    # ---------------- Seller operations ---------------- #

    async def create_product(self, actor, payload):
        return await self._request("create_product", "POST", "/sellers/products", actor, json=payload)

    async def get_seller_products(self, actor, page, limit):
        body = await self._request("get_seller_products", "GET", "/sellers/products", actor,
                                   params={"page": page, "limit": limit})
        return self._items(body, "products")

    async def get_seller_product(self, actor, product_id):
        return await self._request("get_seller_product", "GET", f"/sellers/products/{product_id}", actor,
                                   allow_404=True)

    async def create_harvest_request(self, actor, payload):
        return await self._request("create_harvest_request", "POST", "/sellers/harvest-request", actor, json=payload)

    async def get_product_requests(self, actor, page, limit):
        body = await self._request("get_product_requests", "GET", "/sellers/product-requests", actor,
                                   params={"status": "active", "page": page, "limit": limit})
        return self._items(body, "requests")

    async def create_quote(self, actor, request_id, payload):
        return await self._request("create_quote", "POST", f"/sellers/product-requests/{request_id}/quotes", actor,
                                   json=payload)

    async def acknowledge_harvest_buyer_request(self, actor, request_id, payload):
        return await self._request("acknowledge_harvest_buyer_request", "PATCH",
                                   f"/sellers/harvest/requests/{request_id}/acknowledge", actor, json=payload)

    async def get_orders(self, actor, status, page, limit):
        body = await self._request("get_orders", "GET", "/sellers/orders", actor,
                                   params={"status": status, "page": page, "limit": limit})
        return self._items(body, "orders")

    async def accept_order(self, actor, order_id, payload):
        return await self._request("accept_order", "PATCH", f"/sellers/orders/{order_id}/accept", actor, json=payload)

    async def reject_order(self, actor, order_id, payload):
        return await self._request("reject_order", "PATCH", f"/sellers/orders/{order_id}/reject", actor, json=payload)

    async def update_order_status(self, actor, order_id, payload):
        return await self._request("update_order_status", "PATCH", f"/sellers/orders/{order_id}/status", actor,
                                   json=payload)

    async def get_transactions(self, actor, page, limit):
        body = await self._request("get_transactions", "GET", "/sellers/transactions", actor,
                                   params={"page": page, "limit": limit, "sort_by": "created_at", "sort_order": "desc"})
        return self._items(body, "transactions")

    async def get_transaction(self, actor, transaction_id):
        return await self._request("get_transaction", "GET", f"/sellers/transactions/{transaction_id}", actor,
                                   allow_404=True)

    # ---------------- Buyer operations ---------------- #

    async def browse_marketplace(self, actor, page, limit):
        body = await self._request("browse_marketplace", "GET", "/buyers/marketplace/products", actor,
                                   params={"page": page, "limit": limit, "in_stock": "true"})
        return self._items(body, "products")

    async def get_marketplace_product(self, actor, product_id):
        return await self._request("get_marketplace_product", "GET", f"/buyers/marketplace/products/{product_id}",
                                   actor, allow_404=True)

    async def get_seller_profile(self, actor, seller_org_id):
        return await self._request("get_seller_profile", "GET", f"/buyers/marketplace/sellers/{seller_org_id}",
                                   actor, allow_404=True)

    async def add_to_cart(self, actor, product_id, quantity=1):
        return await self._request("add_to_cart", "POST", "/buyers/cart/items", actor,
                                   json={"product_id": product_id, "quantity": quantity})

    async def get_cart(self, actor):
        return await self._request("get_cart", "GET", "/buyers/cart", actor)

    # ---------------- Storage, knowledge and audit ---------------- #

    async def create_signed_upload_url(self, bucket, object_path):
        body = await self._request("create_signed_upload_url", "POST", f"/storage/{bucket}/signed-upload",
                                   json={"path": object_path})
        signed = (body or {}).get("signed_url") or (body or {}).get("signedUrl")
        if not signed:
            raise BusinessError("create_signed_upload_url", "no signed url returned")
        return signed

    async def search_knowledge(self, org_id, question, scopes):
        body = await self._request("search_knowledge", "POST", "/ai/knowledge/search",
                                   json={"org_id": org_id, "question": question, "scopes": scopes, "limit": 6})
        return self._items(body, "results")

    async def index_context(self, org_id, scope, ref_id, title, content, metadata=None):
        await self._request("index_context", "POST", "/ai/knowledge", json={
            "org_id": org_id, "scope": scope, "ref_id": ref_id, "title": title,
            "content": content, "metadata": metadata or {},
        })

    async def record_audit(self, event, meta):
        await self._request("record_audit", "POST", "/audit/events", json={"event": event, "meta": meta})

    async def close(self):
        await self.http_client.aclose()


# Globally accessible instance
marketplace = HttpMarketplaceFacade(settings.marketplace_api_url, settings.marketplace_service_key)
