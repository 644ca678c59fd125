import product_parser


def create_product(admin_client, **overrides):
    body = {"name": "Mug", "price": 12.50, "category": "Home & Living", "description": "Stoneware mug"}
    body.update(overrides)
    resp = admin_client.post("/api/products", json=body)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def test_status_report(client):
    body = client.get("/api/status").get_json()
    assert body["auth"]["adminConfigured"] is True
    assert body["database"]["loaded"] is True
    assert body["database"]["counts"]["users"] == 1
    assert body["email"]["status"] in ("ok", "disabled")


def test_register_login_logout(client):
    resp = client.post("/api/register", json={"username": "bea", "password": "Garden123", "email": "bea@surprizely.com"})
    assert resp.status_code == 201
    assert resp.get_json()["username"] == "bea"
    assert "password" not in resp.get_json()

    assert client.get("/api/user").get_json()["username"] == "bea"

    assert client.post("/api/logout").status_code == 200
    assert client.get("/api/user").status_code == 401

    resp = client.post("/api/login", json={"username": "bea", "password": "Garden123"})
    assert resp.status_code == 200
    assert client.get("/api/user").status_code == 200


def test_register_validation(client):
    weak = client.post("/api/register", json={"username": "cy", "password": "short"})
    assert weak.status_code == 400
    lower = client.post("/api/register", json={"username": "cy", "password": "alllowercase"})
    assert lower.status_code == 400
    taken = client.post("/api/register", json={"username": "admin", "password": "Whatever12"})
    assert taken.status_code == 400
    assert taken.get_json()["message"] == "Username already exists"


def test_bad_login(client):
    resp = client.post("/api/login", json={"username": "admin", "password": "nope"})
    assert resp.status_code == 401


def test_session_is_server_side(client, app):
    client.post("/api/login", json={"username": "admin", "password": "Admin123!"})
    cookie = client.get_cookie("surprizely.sid")
    assert cookie is not None
    stored = app.extensions["surprizely.session_store"].get(cookie.value)
    assert stored["_user_id"] == "1"


def test_admin_gate(client, user_client):
    assert client.post("/api/products", json={"name": "X", "price": 1}).status_code == 401
    resp = user_client.post("/api/products", json={"name": "X", "price": 1})
    assert resp.status_code == 403
    assert resp.get_json()["message"] == "Admin access required"


def test_product_price_stored_in_cents(admin_client, client):
    product = create_product(admin_client)
    assert product["price"] == 1250
    assert product["averageRating"] == 0
    assert client.get(f"/api/products/{product['id']}").get_json()["name"] == "Mug"
    assert client.get("/api/products/999").status_code == 404

    string_price = create_product(admin_client, name="Watch", price="$1,299.99")
    assert string_price["price"] == 129999

    assert admin_client.post("/api/products", json={"name": "Bad", "price": -3}).status_code == 400


def test_product_list_filters(admin_client, client):
    create_product(admin_client, name="Mug", category="Home & Living")
    create_product(admin_client, name="Novel", category="Books", description="A mystery")
    assert len(client.get("/api/products").get_json()) == 2
    assert [p["name"] for p in client.get("/api/products?category=Books").get_json()] == ["Novel"]
    assert [p["name"] for p in client.get("/api/products?search=mystery").get_json()] == ["Novel"]


def test_product_update_and_delete(admin_client, client):
    product = create_product(admin_client)
    resp = admin_client.patch(f"/api/products/{product['id']}", json={"price": "15", "imageUrl": "/mug.png"})
    assert resp.status_code == 200
    assert resp.get_json()["price"] == 1500
    assert resp.get_json()["imageUrl"] == "/mug.png"
    assert resp.get_json()["name"] == "Mug"

    assert admin_client.delete(f"/api/products/{product['id']}").status_code == 204
    assert admin_client.delete(f"/api/products/{product['id']}").status_code == 404
    assert client.get("/api/products").get_json() == []


def test_product_import_from_url(admin_client, monkeypatch):
    monkeypatch.setattr("catalog_api.parse_product_url", lambda url: {
        "name": "Echo Dot",
        "description": "Smart speaker",
        "price": "49.99",
        "imageUrl": "https://img/echo.jpg",
        "affiliateLink": url,
    })
    resp = admin_client.post("/api/products", json={"productUrl": "https://www.amazon.com/dp/B0", "category": "Electronics"})
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["price"] == 4999
    assert body["category"] == "Electronics"

    monkeypatch.setattr("catalog_api.parse_product_url", lambda url: None)
    resp = admin_client.post("/api/products", json={"productUrl": "https://shop.surprizely.com/x"})
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Failed to parse product URL"


def test_wishlist_flow(admin_client, user_client):
    product = create_product(admin_client)
    assert user_client.post(f"/api/wishlist/{product['id']}").status_code == 201
    assert [p["id"] for p in user_client.get("/api/wishlist").get_json()] == [product["id"]]
    assert user_client.post("/api/wishlist/999").status_code == 404
    assert user_client.delete(f"/api/wishlist/{product['id']}").status_code == 204
    assert user_client.get("/api/wishlist").get_json() == []


def test_rating_flow(admin_client, user_client, client):
    product = create_product(admin_client)
    pid = product["id"]

    assert client.post(f"/api/ratings/{pid}", json={"rating": 5}).status_code == 401
    assert user_client.post(f"/api/ratings/{pid}", json={"rating": 5}).get_json()["averageRating"] == 5
    rated = user_client.post(f"/api/ratings/{pid}", json={"rating": 3}).get_json()
    assert rated["averageRating"] == 3.0
    assert rated["ratingCount"] == 1
    assert user_client.post(f"/api/ratings/{pid}", json={"rating": 9}).status_code == 400

    assert user_client.get(f"/api/ratings/user/{pid}").get_json()["rating"] == 3
    assert len(client.get(f"/api/ratings/{pid}").get_json()) == 1

    admin_client.post(f"/api/ratings/{pid}", json={"rating": 4})
    listing = admin_client.get("/api/admin/ratings").get_json()
    assert {r["username"] for r in listing} == {"alice", "admin"}
    assert all(r["productName"] == "Mug" for r in listing)

    alice_rating = next(r for r in listing if r["username"] == "alice")
    resp = admin_client.put(f"/api/admin/ratings/{alice_rating['id']}", json={"rating": 5})
    assert resp.get_json()["rating"] == 5
    assert client.get(f"/api/products/{pid}").get_json()["averageRating"] == 4.5

    assert admin_client.delete(f"/api/admin/ratings/{alice_rating['id']}").status_code == 204
    assert client.get(f"/api/products/{pid}").get_json()["averageRating"] == 4.0


def test_account_changes(user_client):
    bad = user_client.post("/api/account/password", json={"password": "Brandnew1", "currentPassword": "wrong"})
    assert bad.status_code == 400
    ok = user_client.post("/api/account/password", json={"password": "Brandnew1", "currentPassword": "Wonderland1"})
    assert ok.status_code == 200

    resp = user_client.post("/api/account/email", json={"email": "alice.new@surprizely.com"})
    assert resp.get_json()["email"] == "alice.new@surprizely.com"


def test_admin_user_lookup(admin_client, user_client):
    alice = user_client.get("/api/user").get_json()
    assert admin_client.get(f"/api/admin/users/{alice['id']}").get_json()["username"] == "alice"
    assert admin_client.get("/api/admin/users/999").status_code == 404


def test_affiliate_tag_added_to_amazon_links(monkeypatch):
    monkeypatch.setattr(product_parser.settings, "AMAZON_AFFILIATE_TAG", "surprizely-20")
    tagged = product_parser.add_affiliate_tag("https://www.amazon.com/dp/B0?th=1")
    assert "tag=surprizely-20" in tagged
    assert "th=1" in tagged
    assert product_parser.add_affiliate_tag("https://etsy.com/listing/1") == "https://etsy.com/listing/1"
