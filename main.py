import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import inspect, text
from sqlalchemy.orm import Session

import auth
import carts
import catalog
import checkout
import config
import orders
from database import get_db, init_db
from errors import InvalidRequestError, PermissionDeniedError, StoreError
from models import Cart, User
from paypal_client import PayPalClient
from schemas import (
    CaptureRequest,
    CaptureResponse,
    CartItemIn,
    CartLineOut,
    CartOut,
    CartRemoveIn,
    CreatePayPalOrderResponse,
    ForgotPasswordRequest,
    JewelryItemCard,
    JewelryItemDetail,
    JewelryItemIn,
    LoginRequest,
    OrderDetail,
    OrderSummary,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    ShippingDetails,
    TokenResponse,
    UserOut,
)
from security import get_current_user, require_admin

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger("jewelry-store-api")

_paypal_client: Optional[PayPalClient] = None


def get_paypal_client() -> PayPalClient:
    global _paypal_client
    if _paypal_client is None:
        _paypal_client = PayPalClient(config.paypal_options())
    return _paypal_client


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Jewelry Store API...")
    init_db()
    yield
    logger.info("Shutting down Jewelry Store API...")
    if _paypal_client is not None:
        await _paypal_client.aclose()


# App setup
app = FastAPI(title="Jewelry Store API", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Utilities
def cart_out(cart: Cart) -> CartOut:
    lines = [
        CartLineOut(
            id=line.id,
            jewelry_item_id=line.jewelry_item_id,
            name=line.jewelry_item.name if line.jewelry_item else None,
            main_image_url=line.jewelry_item.main_image_url if line.jewelry_item else None,
            quantity=line.quantity,
            price_at_add_time=line.price_at_add_time,
            line_total=carts.round_money(line.price_at_add_time * line.quantity),
        )
        for line in cart.items
    ]
    return CartOut(id=cart.id, items=lines, total=carts.cart_total(cart.items))


def token_response(user: User, token: str, refresh_token: str) -> TokenResponse:
    return TokenResponse(token=token, refresh_token=refresh_token, user=UserOut.model_validate(user))


def resolve_user_id(user: User, requested: Optional[int]) -> int:
    """Admins may act on another user's orders; everyone else only on their own."""
    if requested is None or requested == user.id:
        return user.id
    if not user.is_admin:
        raise PermissionDeniedError("Not allowed to access another user's orders")
    return requested


def require_idempotency_key(key: Optional[str]) -> str:
    if not key or not key.strip():
        raise InvalidRequestError("Idempotency-Key header is required")
    return key.strip()


# Health and helpers
@app.get("/")
def root():
    return {"message": "Jewelry Store API running"}


@app.get("/test")
def test_database(db: Session = Depends(get_db)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "connection_status": "Not Connected",
        "tables": [],
    }
    try:
        db.execute(text("SELECT 1"))
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
        response["tables"] = inspect(db.get_bind()).get_table_names()[:10]
    except Exception as e:
        response["database"] = f"⚠️ Connected but error: {str(e)[:80]}"
    return response


@app.get("/config/paypal-client-id")
def paypal_client_id():
    client_id = config.paypal_options().client_id
    if not client_id.strip():
        raise HTTPException(status_code=404, detail="PayPal client id is not configured.")
    return {"clientId": client_id}


# Auth
@app.post("/auth/register", response_model=TokenResponse)
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    user = auth.register(db, payload.username, payload.email, payload.password)
    token, refresh_token = auth.issue_tokens(db, user)
    return token_response(user, token, refresh_token)


@app.post("/auth/login", response_model=TokenResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    user, token, refresh_token = auth.login(db, payload.email, payload.password)
    return token_response(user, token, refresh_token)


@app.post("/auth/refresh", response_model=TokenResponse)
def refresh(payload: RefreshRequest, db: Session = Depends(get_db)):
    user, token, refresh_token = auth.refresh(db, payload.user_id, payload.refresh_token)
    return token_response(user, token, refresh_token)


@app.post("/auth/forgot-password")
def forgot_password(payload: ForgotPasswordRequest, db: Session = Depends(get_db)):
    message = auth.forgot_password(db, payload.email)
    return {"message": message}


@app.post("/auth/reset-password")
def reset_password(payload: ResetPasswordRequest, db: Session = Depends(get_db)):
    auth.reset_password(db, payload.token, payload.new_password)
    return {"message": "Password has been reset"}


@app.get("/me", response_model=UserOut)
async def me(current_user: User = Depends(get_current_user)):
    return UserOut.model_validate(current_user)


# Catalog
@app.get("/jewelry", response_model=List[JewelryItemCard])
def list_jewelry(category: Optional[str] = None, collection: Optional[str] = None, db: Session = Depends(get_db)):
    return catalog.list_items(db, category=category, collection=collection)


@app.get("/jewelry/categories", response_model=List[str])
def list_categories(db: Session = Depends(get_db)):
    return catalog.list_categories(db)


@app.get("/jewelry/collections", response_model=List[str])
def list_collections(db: Session = Depends(get_db)):
    return catalog.list_collections(db)


@app.get("/jewelry/{item_id:int}", response_model=JewelryItemDetail)
def get_jewelry(item_id: int, db: Session = Depends(get_db)):
    return catalog.get_item(db, item_id)


@app.post("/jewelry", response_model=JewelryItemDetail, status_code=201)
async def create_jewelry(payload: JewelryItemIn, user: User = Depends(require_admin), db: Session = Depends(get_db)):
    return catalog.add_item(db, payload)


@app.put("/jewelry/{item_id:int}", response_model=JewelryItemDetail)
async def update_jewelry(item_id: int, payload: JewelryItemIn, user: User = Depends(require_admin),
                         db: Session = Depends(get_db)):
    return catalog.update_item(db, item_id, payload)


@app.delete("/jewelry/{item_id:int}")
async def delete_jewelry(item_id: int, user: User = Depends(require_admin), db: Session = Depends(get_db)):
    catalog.delete_item(db, item_id)
    return {"id": item_id, "deleted": True}


# Cart
@app.get("/cart", response_model=CartOut)
async def get_cart(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return cart_out(carts.get_or_create_cart(db, user.id))


@app.post("/cart/add", response_model=CartOut, status_code=201)
async def cart_add(item: CartItemIn, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return cart_out(carts.add_item(db, user.id, item.jewelry_item_id, item.quantity))


@app.post("/cart/remove", response_model=CartOut)
async def cart_remove(item: CartRemoveIn, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return cart_out(carts.remove_item(db, user.id, item.jewelry_item_id))


# Orders
@app.post("/orders", response_model=OrderDetail, status_code=201)
def create_order(payload: ShippingDetails, user_id: Optional[int] = None,
                 user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    owner_id = resolve_user_id(user, user_id)
    owner = user if owner_id == user.id else db.get(User, owner_id)
    if owner is None:
        raise HTTPException(status_code=404, detail="User not found")
    return orders.to_detail(orders.create_order(db, owner, payload))


@app.get("/orders", response_model=List[OrderSummary])
async def list_orders(user_id: Optional[int] = None, user: User = Depends(get_current_user),
                      db: Session = Depends(get_db)):
    return [orders.to_summary(o) for o in orders.list_orders(db, resolve_user_id(user, user_id))]


@app.get("/orders/{order_id:int}", response_model=OrderDetail)
async def get_order(order_id: int, user_id: Optional[int] = None, user: User = Depends(get_current_user),
                    db: Session = Depends(get_db)):
    return orders.to_detail(orders.get_order(db, resolve_user_id(user, user_id), order_id))


# Checkout
@app.post("/checkout/paypal/order", response_model=CreatePayPalOrderResponse)
async def create_paypal_order(
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    paypal: PayPalClient = Depends(get_paypal_client),
):
    key = require_idempotency_key(idempotency_key)
    return await checkout.create_paypal_order(db, paypal, user, key)


@app.post("/checkout/paypal/capture", response_model=CaptureResponse)
async def capture_paypal_order(
    payload: CaptureRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    paypal: PayPalClient = Depends(get_paypal_client),
):
    key = require_idempotency_key(idempotency_key)
    return await checkout.capture_paypal_order(db, paypal, user, payload.order_id, key)


# Optional: seed sample jewelry for demo
@app.post("/admin/seed")
async def seed_catalog(user: User = Depends(require_admin), db: Session = Depends(get_db)):
    count = catalog.seed_catalog(db)
    if not count:
        return {"seeded": False, "message": "Catalog already has items"}
    return {"seeded": True, "count": count}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
