import logging

from flask import jsonify, request
from flask_login import current_user

from errors import NotFoundError
from product_parser import parse_product_url
from schemas import ProductCreate, ProductImportRequest, ProductUpdate, RatingRequest
from shop_context import get_store, parse_body

logger = logging.getLogger("catalog_api")


# -------------------------
# Products
# -------------------------
def list_products():
    category = (request.args.get("category") or "").strip()
    search = (request.args.get("search") or "").strip().lower()
    products = get_store().get_products()
    if category:
        products = [p for p in products if p.category == category]
    if search:
        products = [p for p in products if search in p.name.lower() or search in (p.description or "").lower()]
    return jsonify([p.to_dict() for p in products])


def get_product(product_id: int):
    product = get_store().get_product(product_id)
    if product is None:
        raise NotFoundError("Product", product_id)
    return jsonify(product.to_dict())


def create_product():
    data = request.get_json(silent=True) or {}
    if data.get("productUrl"):
        import_request = ProductImportRequest.model_validate(data)
        parsed = parse_product_url(import_request.product_url)
        if not parsed:
            return jsonify({"message": "Failed to parse product URL"}), 400
        data = {**parsed, "category": import_request.category}
    payload = ProductCreate.model_validate(data)
    product = get_store().create_product(payload.model_dump())
    logger.info("Created product %s (%r) at %s cents", product.id, product.name, product.price)
    return jsonify(product.to_dict()), 201


def update_product(product_id: int):
    payload = parse_body(ProductUpdate)
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    product = get_store().update_product(product_id, changes)
    return jsonify(product.to_dict())


def delete_product(product_id: int):
    get_store().delete_product(product_id)
    logger.info("Deleted product %s", product_id)
    return ("", 204)


# -------------------------
# Wishlist
# -------------------------
def get_wishlist():
    return jsonify([p.to_dict() for p in get_store().get_wishlist(current_user.id)])


def add_to_wishlist(product_id: int):
    get_store().add_to_wishlist(current_user.id, product_id)
    return ("", 201)


def remove_from_wishlist(product_id: int):
    get_store().remove_from_wishlist(current_user.id, product_id)
    return ("", 204)


# -------------------------
# Ratings
# -------------------------
def rate_product(product_id: int):
    payload = parse_body(RatingRequest)
    product = get_store().rate_product(current_user.id, product_id, payload.rating)
    return jsonify(product.to_dict())


def get_product_ratings(product_id: int):
    return jsonify([r.to_dict() for r in get_store().get_product_ratings(product_id)])


def get_my_rating(product_id: int):
    rating = get_store().get_user_rating(current_user.id, product_id)
    return jsonify(rating.to_dict() if rating else None)


def admin_list_ratings():
    store = get_store()
    out = []
    for rating in store.get_ratings():
        row = rating.to_dict()
        product = store.get_product(rating.product_id)
        user = store.get_user(rating.user_id)
        row["productName"] = product.name if product else None
        row["username"] = user.username if user else None
        out.append(row)
    out.sort(key=lambda r: r["id"])
    return jsonify(out)


def admin_update_rating(rating_id: int):
    payload = parse_body(RatingRequest)
    rating = get_store().update_rating(rating_id, payload.rating)
    return jsonify(rating.to_dict())


def admin_delete_rating(rating_id: int):
    get_store().delete_rating(rating_id)
    return ("", 204)


def admin_get_user(user_id: int):
    user = get_store().get_user(user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return jsonify(user.to_dict())
