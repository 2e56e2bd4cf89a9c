"""CJ Dropshipping supplier adapter.

Talks to the CJ REST API (``/api2.0/v1``) with an access token obtained by
exchanging the API key. Every call is bounded by the configured timeout.
CJ reports money in dollars; this adapter converts to integer cents.
"""

from datetime import UTC, datetime, timedelta

import httpx
import structlog

from dropship.supplier.port import (
    FreightOption,
    OrderFailure,
    OrderRequest,
    OrderResult,
    SupplierAPI,
    SupplierError,
    SupplierProduct,
    SupplierVariant,
)

logger = structlog.get_logger(__name__)


def to_cents(dollars) -> int:
    """Convert a CJ dollar amount (number or numeric string, possibly a range) to cents."""
    if dollars is None or dollars == "":
        return 0
    if isinstance(dollars, str) and "-" in dollars:
        dollars = dollars.split("-")[-1]
    return int(round(float(dollars) * 100))


def _classify_failure(message: str) -> OrderFailure:
    lowered = message.lower()
    if "stock" in lowered or "inventory" in lowered:
        return OrderFailure.OUT_OF_STOCK
    if "price" in lowered:
        return OrderFailure.PRICE_CHANGED
    return OrderFailure.OTHER


class CJSupplier(SupplierAPI):
    """Production CJ Dropshipping adapter."""

    def __init__(self, api_key: str, base_url: str, timeout: float = 10.0, client: httpx.Client | None = None):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.Client(timeout=httpx.Timeout(timeout=timeout))
        self._access_token: str | None = None
        self._token_expiry: datetime | None = None

    # -------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------
    def _authenticate(self) -> None:
        data = self._request("POST", "/authentication/getAccessToken", json={"apiKey": self.api_key}, auth=False)
        self._access_token = data["accessToken"]
        expiry = data.get("accessTokenExpiryDate")
        self._token_expiry = datetime.fromisoformat(expiry) if expiry else datetime.now(UTC) + timedelta(days=1)
        if self._token_expiry.tzinfo is None:
            self._token_expiry = self._token_expiry.replace(tzinfo=UTC)

    def _ensure_token(self) -> None:
        # Refresh an hour before expiry
        if self._access_token and self._token_expiry and self._token_expiry > datetime.now(UTC) + timedelta(hours=1):
            return
        self._authenticate()

    def _request(self, method: str, path: str, params=None, json=None, auth: bool = True):
        if auth:
            self._ensure_token()

        headers = {"Content-Type": "application/json"}
        if auth and self._access_token:
            headers["CJ-Access-Token"] = self._access_token

        try:
            response = self.client.request(method, f"{self.base_url}{path}", params=params, json=json, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SupplierError(f"CJ API request failed: {e}") from e

        body = response.json()
        if body.get("code") != 200:
            raise SupplierError(f"CJ API error {body.get('code')}: {body.get('message')}")
        return body.get("data")

    # -------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------
    def search_products(self, keyword: str, page_size: int = 20) -> list[SupplierProduct]:
        data = self._request("GET", "/product/listV2", params={"keyWord": keyword, "page": 1, "size": page_size})
        content = (data or {}).get("content") or [{}]
        products = []
        for raw in content[0].get("productList") or []:
            variants = self._request("GET", "/product/variant/query", params={"pid": raw["id"]}) or []
            products.append(
                SupplierProduct(
                    product_id=raw["id"],
                    name=raw.get("nameEn") or "",
                    variants=tuple(
                        SupplierVariant(
                            variant_id=v["vid"],
                            product_id=raw["id"],
                            name=v.get("variantNameEn") or "",
                            cost_cents=to_cents(v.get("variantSellPrice")),
                            suggested_retail_cents=to_cents(v.get("variantSugSellPrice")) or None,
                            stock=v.get("inventoryNum"),
                            image_urls=(v["variantImage"],) if v.get("variantImage") else (),
                        )
                        for v in variants
                    ),
                )
            )
        return products

    def get_freight_options(self, variant_id: str, from_country: str, to_country: str) -> list[FreightOption]:
        data = self._request(
            "POST",
            "/logistic/freightCalculate",
            json={
                "startCountryCode": from_country,
                "endCountryCode": to_country,
                "products": [{"vid": variant_id, "quantity": 1}],
            },
        )
        return [
            FreightOption(
                logistic_name=option["logisticName"],
                cost_cents=to_cents(option.get("logisticPrice")),
                days=option.get("logisticAging"),
            )
            for option in data or []
        ]

    def get_stock(self, variant_id: str) -> int:
        data = self._request("GET", "/product/stock/queryByVid", params={"vid": variant_id}) or []
        return sum(int(entry.get("storageNum") or entry.get("totalInventoryNum") or 0) for entry in data)

    def get_variant_cost(self, variant_id: str) -> int:
        data = self._request("GET", "/product/variant/queryByVid", params={"vid": variant_id})
        if not data:
            raise SupplierError(f"Variant {variant_id} not found")
        return to_cents(data.get("variantSellPrice"))

    # -------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------
    def place_order(self, request: OrderRequest) -> OrderResult:
        address = request.address
        street = f"{address.line1} {address.line2}".strip()
        try:
            data = self._request(
                "POST",
                "/shopping/order/createOrderV2",
                json={
                    "orderNumber": request.order_number,
                    "shippingCountryCode": address.country,
                    "shippingCustomerName": address.name,
                    "shippingAddress": street,
                    "shippingCity": address.city,
                    "shippingProvince": address.state,
                    "shippingZip": address.postal_code,
                    "shippingPhone": address.phone,
                    "logisticName": request.logistic_name,
                    "fromCountryCode": request.from_country,
                    "payType": 2,
                    "products": [{"vid": request.variant_id, "quantity": request.quantity}],
                },
            )
        except SupplierError as e:
            cause = e.__cause__
            if isinstance(cause, httpx.TransportError):
                return OrderResult(success=False, failure=OrderFailure.TRANSIENT, failure_reason=str(e))
            return OrderResult(success=False, failure=_classify_failure(str(e)), failure_reason=str(e))

        order_id = (data or {}).get("orderId")
        if not order_id:
            return OrderResult(success=False, failure=OrderFailure.OTHER, failure_reason="CJ returned no orderId")

        return OrderResult(
            success=True,
            order_id=order_id,
            order_number=data.get("orderNumber") or request.order_number,
            total_cost_cents=to_cents(data.get("orderAmount")) or None,
        )

    def pay_order(self, order_id: str) -> bool:
        try:
            self._request("POST", "/shopping/pay/payBalance", json={"orderId": order_id})
        except SupplierError as e:
            logger.warning("CJ order payment failed", order_id=order_id, error=str(e))
            return False
        return True

    def confirm_order(self, order_id: str) -> bool:
        try:
            self._request("PATCH", "/shopping/order/confirmOrder", params={"orderId": order_id})
        except SupplierError as e:
            logger.warning("CJ order confirmation failed", order_id=order_id, error=str(e))
            return False
        return True

    def get_order_status(self, order_id: str) -> dict | None:
        data = self._request("GET", "/shopping/order/getOrderDetail", params={"orderId": order_id})
        if not data:
            return None
        return {
            "status": data.get("orderStatus"),
            "tracking_number": data.get("trackNumber"),
            "tracking_carrier": data.get("logisticName"),
        }
