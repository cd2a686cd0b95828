from typing import TypedDict


class ShopDocument(TypedDict):

    id: str
    name: str
