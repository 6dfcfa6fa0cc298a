import pytest

from goldenshop import admin
from goldenshop.errors import (
    Forbidden,
    InvalidSelection,
    PartialFailure,
    RecordNotFound,
    RemoteOperationFailed,
    Unauthenticated,
)
from goldenshop.schemas import COL_CART, COL_DOWNLOADS, COL_ORDERS, COL_PRODUCTS, COL_USERS, Product, ProductUpdate


@pytest.fixture
def admin_ctx(make_user, context_for):
    return context_for(make_user(email="admin@example.com", role="admin"))


def test_admin_actions_need_admin(make_user, context_for):
    with pytest.raises(Unauthenticated):
        admin.reset_purchases(context_for(None))
    client_ctx = context_for(make_user(email="client@example.com", role="client"))
    with pytest.raises(Forbidden):
        admin.grant_products(client_ctx, "x", ["y"])
    with pytest.raises(Forbidden):
        admin.list_users(client_ctx)


def test_list_users_hides_password_hashes(admin_ctx, make_user):
    make_user()
    users = admin.list_users(admin_ctx)
    assert len(users) == 2
    assert all("hashed_password" not in u for u in users)


def test_product_lifecycle(store, admin_ctx):
    product = admin.create_product(
        admin_ctx, Product(name="Lobby", type="map", creator="Golden", price=4.5)
    )
    assert product["featured"] is False

    updated = admin.update_product(admin_ctx, product["id"], ProductUpdate(price=6, featured=True))
    assert updated["price"] == 6
    assert updated["featured"] is True
    assert updated["name"] == "Lobby"

    unchanged = admin.update_product(admin_ctx, product["id"], ProductUpdate())
    assert unchanged["price"] == 6

    admin.delete_product(admin_ctx, product["id"])
    assert store.count_documents(COL_PRODUCTS) == 0
    with pytest.raises(RecordNotFound):
        admin.delete_product(admin_ctx, product["id"])


def test_grant_requires_user_and_products(admin_ctx, make_user, make_product):
    with pytest.raises(InvalidSelection):
        admin.grant_products(admin_ctx, "", [make_product()["id"]])
    with pytest.raises(InvalidSelection):
        admin.grant_products(admin_ctx, make_user()["id"], [])


def test_grant_two_products_to_user(store, admin_ctx, make_user, make_product):
    target = make_user(email="x@example.com")
    plugin = make_product(name="Anti Cheat", download_url="https://cdn.example.com/ac.jar")
    world = make_product(name="Skyblock", type="map", map_file="skyblock.zip")

    result = admin.grant_products(admin_ctx, target["id"], [plugin["id"], world["id"]])

    assert result["promoted"] is True
    assert sorted(result["granted"]) == sorted([plugin["id"], world["id"]])
    orders = store.get_documents(COL_ORDERS, {"user_id": target["id"]})
    downloads = store.get_documents(COL_DOWNLOADS, {"user_id": target["id"]})
    assert len(orders) == 2
    assert len(downloads) == 2
    assert {o["payment_method"] for o in orders} == {"admin_added"}
    assert {o["payment_status"] for o in orders} == {"completed"}
    urls = {d["product_name"]: d["file_url"] for d in downloads}
    assert urls["Anti Cheat"] == "https://cdn.example.com/ac.jar"
    assert urls["Skyblock"] == f"http://files.example.com/api/files/products/{world['id']}/skyblock.zip"
    assert store.get_document(COL_USERS, target["id"])["role"] == "client"


def test_grant_file_url_priority(store, admin_ctx, make_user, make_product):
    target = make_user(email="x@example.com")
    both = make_product(name="Both", plugin_file="p.jar", map_file="m.zip")
    bare = make_product(name="Bare")

    admin.grant_products(admin_ctx, target["id"], [both["id"], bare["id"]])

    urls = {d["product_name"]: d["file_url"] for d in store.get_documents(COL_DOWNLOADS)}
    assert urls["Both"].endswith(f"/products/{both['id']}/p.jar")
    assert urls["Bare"] == ""


@pytest.mark.parametrize("role", ["client", "admin"])
def test_grant_keeps_higher_roles(store, admin_ctx, make_user, make_product, role):
    target = make_user(email="x@example.com", role=role)
    result = admin.grant_products(admin_ctx, target["id"], [make_product()["id"]])
    assert result["promoted"] is False
    assert store.get_document(COL_USERS, target["id"])["role"] == role


def test_grant_deduplicates_products(store, admin_ctx, make_user, make_product):
    target = make_user(email="x@example.com")
    product = make_product()
    admin.grant_products(admin_ctx, target["id"], [product["id"], product["id"]])
    assert store.count_documents(COL_ORDERS) == 1


def test_grant_unknown_user(admin_ctx, make_product):
    with pytest.raises(RecordNotFound):
        admin.grant_products(admin_ctx, "0123456789abcdef01234567", [make_product()["id"]])


def test_grant_partial_failure_reports_per_product(store, admin_ctx, make_user, make_product):
    target = make_user(email="x@example.com")
    product = make_product()
    missing = "0123456789abcdef01234567"

    with pytest.raises(PartialFailure) as exc:
        admin.grant_products(admin_ctx, target["id"], [product["id"], missing])

    report = exc.value.report
    assert report.succeeded == [product["id"]]
    assert list(report.failed) == [missing]
    assert store.count_documents(COL_ORDERS) == 1
    assert store.count_documents(COL_DOWNLOADS) == 1
    # the grant that went through still counts as a purchase
    assert store.get_document(COL_USERS, target["id"])["role"] == "client"


def test_failed_order_writes_no_download(store, admin_ctx, make_user, make_product, monkeypatch):
    target = make_user(email="x@example.com")
    good = make_product(name="Good")
    bad = make_product(name="Bad")
    original = store.create_document

    def flaky(collection, data):
        if collection == COL_ORDERS and data.product_name == "Bad":
            raise RemoteOperationFailed("write conflict")
        return original(collection, data)

    monkeypatch.setattr(store, "create_document", flaky)

    with pytest.raises(PartialFailure):
        admin.grant_products(admin_ctx, target["id"], [good["id"], bad["id"]])

    downloads = store.get_documents(COL_DOWNLOADS, {"user_id": target["id"]})
    assert [d["product_name"] for d in downloads] == ["Good"]


def test_reset_purchases(store, admin_ctx, make_user, make_product):
    plain = make_user(email="plain@example.com", role="user", cagnotte=3)
    clients = [make_user(email=f"c{i}@example.com", role="client", cagnotte=5) for i in range(2)]
    product = make_product()
    for c in clients:
        admin.grant_products(admin_ctx, c["id"], [product["id"]])
    store.update_document(COL_USERS, admin_ctx.session.user_id, {"cagnotte": 7})

    result = admin.reset_purchases(admin_ctx)

    assert result == {"orders_deleted": 2, "downloads_deleted": 2, "users_reset": 2}
    assert store.count_documents(COL_ORDERS) == 0
    assert store.count_documents(COL_DOWNLOADS) == 0
    for c in clients:
        reset = store.get_document(COL_USERS, c["id"])
        assert reset["role"] == "user"
        assert reset["cagnotte"] == 0
    untouched = store.get_document(COL_USERS, plain["id"])
    assert (untouched["role"], untouched["cagnotte"]) == ("user", 3)
    me = store.get_document(COL_USERS, admin_ctx.session.user_id)
    assert (me["role"], me["cagnotte"]) == ("admin", 7)


def test_reset_leaves_carts_alone(store, admin_ctx, make_user, make_product, context_for):
    context_for(make_user()).cart.add_item(make_product())
    admin.reset_purchases(admin_ctx)
    assert store.count_documents(COL_CART) == 1
