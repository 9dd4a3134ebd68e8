"""FlexVolt product catalog.

The storefront sells a single battery line in three capacities. Prices are
kept in integer cents like every other amount in the backend.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Product:
    """A sellable FlexVolt battery.

    Attributes:
        sku: Manufacturer SKU, also used as the inventory key.
        name: Display name.
        capacity: Capacity label (``6Ah``, ``9Ah``, ``15Ah``).
        price_cents: Unit price in cents.
        voltage: Voltage label shared by the whole line.
    """

    sku: str
    name: str
    capacity: str
    price_cents: int
    voltage: str = "20V/60V MAX"


PRODUCTS: dict[str, Product] = {
    p.sku: p
    for p in (
        Product(sku="DCB606", name="FlexVolt 6Ah Battery", capacity="6Ah", price_cents=9500),
        Product(sku="DCB609", name="FlexVolt 9Ah Battery", capacity="9Ah", price_cents=12500),
        Product(sku="DCB615", name="FlexVolt 15Ah Battery", capacity="15Ah", price_cents=24500),
    )
}


def get_product(sku: str) -> Product:
    """Return the product for ``sku``.

    Raises:
        KeyError: When the SKU is not part of the catalog.
    """
    return PRODUCTS[sku.upper()]


def all_products() -> list[Product]:
    return sorted(PRODUCTS.values(), key=lambda p: p.price_cents)
