"""Demo store API load test — catalogue browsing, price scraping and admin updates.

Virtual users authenticate at most once per journey, browse categories and
products, and update products through the admin API. Run with:

    USERS=10 RAMP_DURATION=20 TEST_DURATION=120 loadweave run examples/demostore.py

Set ``DEMOSTORE_SCENARIO`` to ``no-admin`` for the read-mostly mix, or to
``admin`` for a single fixed-order admin journey per user.
"""

from __future__ import annotations

import os
from pathlib import Path

from loadweave import (
    During,
    Once,
    RampUsers,
    ScenarioSpec,
    Simulation,
    body,
    call,
    chain,
    csv_feeder,
    do_if,
    feed,
    file_body,
    load_config,
    pause,
    random_switch,
    repeat,
    status,
    transform,
)
from loadweave.dsl.session import AUTHENTICATED

HERE = Path(__file__).parent
config = load_config()

MIN_PAUSE, MAX_PAUSE = 0.2, 3.0
AUTH_HEADER = {"authorization": "Bearer #{jwt}"}

categories_feeder = csv_feeder(HERE / "data" / "categories.csv", strategy="random")
products_feeder = csv_feeder(HERE / "data" / "products.csv", strategy="circular")
create_product_body = file_body(HERE / "bodies" / "create_product.json")
update_category_body = file_body(HERE / "bodies" / "update_category.json")

init_session = transform(lambda s: s.set(AUTHENTICATED, False), name="Init Session")

# -- authentication ------------------------------------------------------------

authenticate = do_if(
    lambda s: not s.get_bool(AUTHENTICATED),
    chain(
        call(
            "Authenticate User",
            "POST",
            "/api/authenticate",
            body='{"username": "admin", "password": "admin"}',
            checks=[status().is_(200), body("token").save_as("jwt")],
        ),
        transform(lambda s: s.set(AUTHENTICATED, True), name="Mark Authenticated"),
    ),
)

# -- categories ----------------------------------------------------------------


def _category_names(categories: list[dict], category_id: int) -> list[str]:
    return [c["name"] for c in categories if c.get("id") == category_id]


list_categories = call(
    "List Categories",
    "GET",
    "/api/category",
    checks=[
        body("@").as_list().satisfies(
            lambda categories: _category_names(categories, 6) == ["For Her"],
            "category 6 is named 'For Her'",
        ),
    ],
)

update_category = chain(
    feed(categories_feeder),
    authenticate,
    call(
        "Update Category",
        "PUT",
        "/api/category/#{categoryId}",
        headers=AUTH_HEADER,
        body=update_category_body,
        checks=[body("$.name").is_template("#{categoryName}")],
    ),
)

# -- products ------------------------------------------------------------------

list_all_products = call(
    "List all Products",
    "GET",
    "/api/product",
    checks=[
        body("@").as_list().save_as("allProducts"),
        body("[*].id").as_list().save_as("allProductIds"),
    ],
)

list_products = chain(
    feed(products_feeder),
    call(
        "List Products",
        "GET",
        "/api/product?category=#{productCategoryId}",
        checks=[
            body("[*].categoryId").as_list().matches(
                lambda ids, s: all(str(i) == str(s.get("productCategoryId")) for i in ids),
                "only the requested category",
            ),
            body("[*].id").as_list().save_as("allProductIds"),
        ],
    ),
)


def _pick_product_id(s):
    ids = s.get_list("allProductIds")
    return s.set("productId", s.random.choice(ids))


get_product = chain(
    transform(_pick_product_id, name="Pick Product"),
    call(
        "Get a Product",
        "GET",
        "/api/product/#{productId}",
        checks=[
            body("id").as_int().is_template("#{productId}"),
            body("@").as_map().save_as("product"),
        ],
    ),
)


def _product_to_session(s):
    product = s.get_map("product")
    return s.set_all(
        {
            "productCategoryId": product.get("categoryId"),
            "productName": product.get("name"),
            "productDescription": product.get("description"),
            "productImage": product.get("image"),
            "productPrice": product.get("price"),
            "productId": product.get("id"),
        }
    )


update_product = chain(
    authenticate,
    transform(_product_to_session, name="Load Product"),
    call(
        "Updating a Product #{productName}",
        "PUT",
        "/api/product/#{productId}",
        headers=AUTH_HEADER,
        body=create_product_body,
        checks=[body("$.price").is_template("#{productPrice}")],
    ),
)

create_product = chain(
    authenticate,
    feed(products_feeder),
    call(
        "Create Product #{productName}",
        "POST",
        "/api/product",
        headers=AUTH_HEADER,
        body=create_product_body,
    ),
)

# -- journeys ------------------------------------------------------------------

admin = chain(
    init_session,
    list_categories,
    pause(MIN_PAUSE, MAX_PAUSE),
    list_products,
    pause(MIN_PAUSE, MAX_PAUSE),
    get_product,
    pause(MIN_PAUSE, MAX_PAUSE),
    update_product,
    pause(MIN_PAUSE, MAX_PAUSE),
    repeat(3, create_product),
    pause(MIN_PAUSE, MAX_PAUSE),
    update_category,
    name="admin",
)

price_scrapper = chain(
    list_categories,
    pause(MIN_PAUSE, MAX_PAUSE),
    list_all_products,
    name="price scrapper",
)


def _product_at_index(s):
    products = s.get_list("allProducts")
    return s.set("product", products[s.get_int("productIndex")])


price_update = chain(
    init_session,
    list_all_products,
    pause(MIN_PAUSE, MAX_PAUSE),
    repeat(
        lambda s: len(s.get_list("allProducts")),
        chain(
            transform(_product_at_index, name="Select Product"),
            update_product,
            pause(MIN_PAUSE, MAX_PAUSE),
        ),
        counter="productIndex",
    ),
    name="price update",
)

# -- scenarios -----------------------------------------------------------------

SCENARIOS = {
    "default": ScenarioSpec(
        "Default Scenario Test",
        chain(random_switch((20, admin), (40, price_scrapper), (40, price_update))),
        bound=During(config.test_duration),
    ),
    "no-admin": ScenarioSpec(
        "Load test without Admin",
        chain(random_switch((40, price_scrapper), (40, price_update))),
        bound=During(60.0),
    ),
    "admin": ScenarioSpec("DemostoreApiSimulation", admin, bound=Once()),
}

simulation = Simulation(
    name="Demostore API",
    scenarios=[SCENARIOS[os.environ.get("DEMOSTORE_SCENARIO", "default")]],
    profile=RampUsers(users=config.users, during=config.ramp_duration),
    base_url=config.base_url or "https://demostore.gatling.io",
    default_headers={
        "Cache-Control": "no-cache",
        "content-type": "application/json",
        "accept": "application/json",
    },
    seed=config.seed,
)
