import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database
from pymongo.errors import PyMongoError

import orders as order_service
from auth import current_user, end_session, hash_password, public_user, require_admin, start_session, verify_password
from checkout import CheckoutContext, find_coupon, place_order, review
from database import create_document, ensure_object_id, get_db, get_documents, to_str_id
from errors import (
    AddressNotFoundError,
    CartItemNotFoundError,
    CheckoutError,
    DatabaseUnavailableError,
    EmptyCartError,
    ForbiddenError,
    MissingAddressError,
    NotAuthenticatedError,
    OrderNotFoundError,
    OrderPersistenceError,
    PaymentNotConfirmedError,
    PaymentStateError,
    ProductNotFoundError,
    ValidationError,
)
from payments import GatewayRedirect, PaymentResolver
from pricing import coupon_discount
from schemas import (
    AddressIn,
    AddressUpdate,
    AuthPayload,
    CartAddRequest,
    CartUpdateRequest,
    CheckoutSummaryRequest,
    CouponValidateRequest,
    GatewayCallback,
    OrderRequest,
    OrderStatusUpdate,
    User,
)
from settings import Settings, get_settings

logger = logging.getLogger(__name__)

app = FastAPI(title="FashionFusion API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ------------------------- Errors -------------------------
ERROR_STATUS_CODES = {
    AddressNotFoundError: 404,
    OrderNotFoundError: 404,
    CartItemNotFoundError: 404,
    ProductNotFoundError: 404,
    ValidationError: 400,
    EmptyCartError: 400,
    MissingAddressError: 400,
    PaymentNotConfirmedError: 400,
    PaymentStateError: 400,
    NotAuthenticatedError: 401,
    ForbiddenError: 403,
    OrderPersistenceError: 500,
    DatabaseUnavailableError: 500,
}


def _status_for(exc: CheckoutError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500


@app.exception_handler(CheckoutError)
async def checkout_error_handler(request: Request, exc: CheckoutError) -> JSONResponse:
    """Map CheckoutError subclasses to HTTP responses."""
    content = {"error": str(exc), "errorType": type(exc).__name__}
    field = getattr(exc, "field", None)
    if field:
        content["field"] = field
    return JSONResponse(status_code=_status_for(exc), content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Invalid request")
    if location:
        message = f"{location}: {message}"
    return JSONResponse(status_code=400, content={"error": message, "errorType": "ValidationError"})


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError) -> JSONResponse:
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Server error", "errorType": "DatabaseError"})


def checkout_context(
    user: Dict[str, Any] = Depends(current_user),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> CheckoutContext:
    return CheckoutContext(db=db, user_id=user["id"], settings=settings)


# ------------------------- Health -------------------------
@app.get("/")
def read_root():
    return {"brand": "FashionFusion", "status": "running"}


# ------------------------- Auth -------------------------
@app.post("/api/auth/register", status_code=201)
def register_user(
    data: AuthPayload,
    response: Response,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    email = data.email.lower()
    if db["user"].find_one({"email": email}):
        raise ValidationError("Email already registered", field="email")

    user = User(name=data.name or email.split("@")[0], email=email, password_hash=hash_password(data.password))
    user_id = create_document(db, "user", user)
    start_session(db, response, user_id, settings)
    logger.info("Registered user %s", user_id)
    return {"user": public_user(db["user"].find_one({"_id": ensure_object_id(user_id)}))}


@app.post("/api/auth/login")
def login_user(
    data: AuthPayload,
    response: Response,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user = db["user"].find_one({"email": data.email.lower()})
    if not user or not verify_password(data.password, user["password_hash"]):
        raise NotAuthenticatedError("Invalid credentials")
    start_session(db, response, str(user["_id"]), settings)
    return {"user": public_user(user)}


@app.post("/api/auth/logout")
def logout_user(
    request: Request,
    response: Response,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    end_session(db, request, response, settings)
    return {"message": "Logged out successfully"}


@app.get("/api/auth/me")
def me(user: Dict[str, Any] = Depends(current_user)):
    return {"user": user}


# ------------------------- Products -------------------------
def _public_product(doc: Dict[str, Any]) -> Dict[str, Any]:
    doc = to_str_id(doc)
    doc.pop("created_at", None)
    doc.pop("updated_at", None)
    return doc


@app.get("/api/products")
def list_products(color: Optional[str] = None, size: Optional[str] = None, db: Database = Depends(get_db)) -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {}
    if color:
        query["colors"] = {"$in": [color]}
    if size:
        query["sizes"] = {"$in": [size]}
    return [_public_product(p) for p in get_documents(db, "product", query)]


@app.get("/api/products/{slug}")
def get_product(slug: str, db: Database = Depends(get_db)) -> Dict[str, Any]:
    item = db["product"].find_one({"slug": slug})
    if not item:
        raise ProductNotFoundError(slug)
    return _public_product(item)


# ------------------------- Cart -------------------------
@app.get("/api/cart")
def get_cart(ctx: CheckoutContext = Depends(checkout_context)):
    return {"cart": ctx.cart.to_api()}


@app.post("/api/cart")
def add_to_cart(payload: CartAddRequest, ctx: CheckoutContext = Depends(checkout_context)):
    try:
        product = ctx.db["product"].find_one({"_id": ensure_object_id(payload.product_id)})
    except ValidationError:
        product = ctx.db["product"].find_one({"slug": payload.product_id})
    if not product:
        raise ProductNotFoundError(payload.product_id)

    store = ctx.cart
    store.add(product, payload.quantity, payload.size, payload.color)
    return {"cart": store.to_api()}


@app.patch("/api/cart/{item_id}")
def update_cart_item(item_id: str, payload: CartUpdateRequest, ctx: CheckoutContext = Depends(checkout_context)):
    store = ctx.cart
    store.update(item_id, payload.quantity)
    return {"cart": store.to_api()}


@app.delete("/api/cart/{item_id}")
def remove_cart_item(item_id: str, ctx: CheckoutContext = Depends(checkout_context)):
    store = ctx.cart
    store.remove(item_id)
    return {"cart": store.to_api()}


@app.delete("/api/cart")
def clear_cart(ctx: CheckoutContext = Depends(checkout_context)):
    store = ctx.cart
    store.clear()
    return {"cart": store.to_api()}


# ------------------------- Addresses -------------------------
@app.get("/api/addresses")
def list_addresses(ctx: CheckoutContext = Depends(checkout_context)):
    return {"addresses": [a.to_api() for a in ctx.address_book.list()]}


@app.post("/api/addresses", status_code=201)
def create_address(payload: AddressIn, ctx: CheckoutContext = Depends(checkout_context)):
    address = ctx.address_book.create(payload)
    return {"address": address.to_api()}


@app.patch("/api/addresses/{address_id}")
def update_address(address_id: str, payload: AddressUpdate, ctx: CheckoutContext = Depends(checkout_context)):
    address = ctx.address_book.update(address_id, payload)
    return {"address": address.to_api()}


@app.delete("/api/addresses/{address_id}")
def delete_address(address_id: str, ctx: CheckoutContext = Depends(checkout_context)):
    ctx.address_book.delete(address_id)
    return {"message": "Address deleted successfully"}


# ------------------------- Coupons / Checkout -------------------------
@app.post("/api/coupons/validate")
def validate_coupon(payload: CouponValidateRequest, ctx: CheckoutContext = Depends(checkout_context)):
    coupon = find_coupon(ctx.db, payload.code)
    discount = coupon_discount(coupon, payload.subtotal, datetime.now(timezone.utc))
    return {"coupon": {"code": coupon.code, "description": coupon.description, "discount": discount}}


@app.post("/api/checkout/summary")
def checkout_summary(payload: CheckoutSummaryRequest, ctx: CheckoutContext = Depends(checkout_context)):
    return review(ctx, payload.coupon_code)


@app.post("/api/payment/verify")
async def verify_payment(payload: GatewayCallback, settings: Settings = Depends(get_settings),
                         user: Dict[str, Any] = Depends(current_user)):
    resolver = PaymentResolver(GatewayRedirect(), settings)
    await resolver.start()
    resolver.complete(payload.model_dump())
    return {"success": True}


# ------------------------- Orders -------------------------
@app.post("/api/orders", status_code=201)
async def create_order(payload: OrderRequest, ctx: CheckoutContext = Depends(checkout_context)):
    order = await place_order(ctx, payload)
    return {"order": order.to_api()}


@app.get("/api/orders")
def list_orders(ctx: CheckoutContext = Depends(checkout_context)):
    return {"orders": [o.to_api() for o in order_service.list_orders(ctx.db, ctx.user_id)]}


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, ctx: CheckoutContext = Depends(checkout_context)):
    return {"order": order_service.get_order(ctx.db, order_id, ctx.user_id).to_api()}


# ------------------------- Admin -------------------------
@app.get("/api/admin/orders")
def admin_list_orders(admin: Dict[str, Any] = Depends(require_admin), db: Database = Depends(get_db)):
    return {"orders": [o.to_api() for o in order_service.list_orders(db, limit=100)]}


@app.patch("/api/admin/orders/{order_id}")
def admin_update_order(
    order_id: str,
    payload: OrderStatusUpdate,
    admin: Dict[str, Any] = Depends(require_admin),
    db: Database = Depends(get_db),
):
    order = order_service.update_status(db, order_id, payload.status, payload.tracking_number)
    return {"order": order.to_api()}


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
