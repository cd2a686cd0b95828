from typing import Optional, TypedDict


class ProfileDocument(TypedDict, total=False):

    id: str
    name: Optional[str]
    email: str
    profile_picture_url: Optional[str]
