# classifieds/api/routes.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request

from .. import schemas
from ..services import Marketplace

router = APIRouter()


def get_marketplace(request: Request) -> Marketplace:
    return request.app.state.marketplace


def current_user(
    x_user_id: Optional[int] = Header(None),
    mp: Marketplace = Depends(get_marketplace),
) -> schemas.AuthenticatedUser:
    # token verification happens upstream; we only receive the vouched-for id
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Missing X-User-Id")
    return mp.store.authenticate(x_user_id)


def optional_user(
    x_user_id: Optional[int] = Header(None),
    mp: Marketplace = Depends(get_marketplace),
) -> Optional[schemas.AuthenticatedUser]:
    if x_user_id is None:
        return None
    return mp.store.authenticate(x_user_id)


@router.get("/health", response_model=schemas.Health)
def health():
    return {"status": "ok"}


# users

@router.post("/users", response_model=schemas.UserOut, status_code=201)
def register(payload: schemas.UserCreate, mp: Marketplace = Depends(get_marketplace)):
    return mp.store.create_user(payload)


@router.get("/users/{user_id}", response_model=schemas.UserOut)
def get_user(user_id: int, mp: Marketplace = Depends(get_marketplace)):
    return mp.store.get_user(user_id)


@router.patch("/users/me", response_model=schemas.UserOut)
def update_me(
    payload: schemas.UserUpdate,
    user: schemas.AuthenticatedUser = Depends(current_user),
    mp: Marketplace = Depends(get_marketplace),
):
    return mp.store.update_profile(user.id, payload)


@router.get("/users/{user_id}/listings", response_model=List[schemas.ListingOut])
def seller_listings(
    user_id: int,
    status: Optional[schemas.ListingStatus] = Query(None),
    mp: Marketplace = Depends(get_marketplace),
):
    return mp.store.list_seller_listings(user_id, status)


# categories

@router.get("/categories", response_model=List[schemas.CategoryNode])
def category_tree(mp: Marketplace = Depends(get_marketplace)):
    return mp.categories.tree()


@router.post("/categories", response_model=schemas.CategoryOut, status_code=201)
def create_category(
    payload: schemas.CategoryCreate,
    _user: schemas.AuthenticatedUser = Depends(current_user),
    mp: Marketplace = Depends(get_marketplace),
):
    return mp.categories.create_category(payload)


@router.patch("/categories/{category_id}", response_model=schemas.CategoryOut)
def move_category(
    category_id: int,
    payload: schemas.CategoryMove,
    _user: schemas.AuthenticatedUser = Depends(current_user),
    mp: Marketplace = Depends(get_marketplace),
):
    return mp.categories.set_parent(category_id, payload.parent_id)


@router.get("/categories/{category_id}/descendants", response_model=List[int])
def category_descendants(category_id: int, mp: Marketplace = Depends(get_marketplace)):
    return sorted(mp.categories.resolve_descendants(category_id))


# listings

@router.get("/listings", response_model=schemas.ListingPage)
def search_listings(
    q: Optional[str] = Query(None),
    category_id: Optional[int] = Query(None),
    location: Optional[str] = Query(None),
    price_min: Optional[float] = Query(None),
    price_max: Optional[float] = Query(None),
    status: str = Query("active"),
    sort: str = Query("relevance"),
    page: int = Query(1),
    page_size: int = Query(20),
    mp: Marketplace = Depends(get_marketplace),
):
    return mp.search({
        "q": q,
        "category_id": category_id,
        "location": location,
        "price_min": price_min,
        "price_max": price_max,
        "status": status,
        "sort": sort,
        "page": page,
        "page_size": page_size,
    })


@router.post("/listings", response_model=schemas.ListingOut, status_code=201)
def create_listing(
    payload: schemas.ListingCreate,
    user: schemas.AuthenticatedUser = Depends(current_user),
    mp: Marketplace = Depends(get_marketplace),
):
    return mp.create_listing(user.id, payload)


@router.get("/listings/{listing_id}", response_model=schemas.ListingOut)
def get_listing(
    listing_id: int,
    user: Optional[schemas.AuthenticatedUser] = Depends(optional_user),
    mp: Marketplace = Depends(get_marketplace),
):
    return mp.get_listing(listing_id, user.id if user else None)


@router.patch("/listings/{listing_id}", response_model=schemas.ListingOut)
def update_listing(
    listing_id: int,
    payload: schemas.ListingUpdate,
    user: schemas.AuthenticatedUser = Depends(current_user),
    mp: Marketplace = Depends(get_marketplace),
):
    return mp.store.update_listing(listing_id, user.id, payload)


@router.post("/listings/{listing_id}/status", response_model=schemas.ListingOut)
def change_status(
    listing_id: int,
    payload: schemas.StatusChange,
    user: schemas.AuthenticatedUser = Depends(current_user),
    mp: Marketplace = Depends(get_marketplace),
):
    return mp.update_listing_status(listing_id, user.id, payload.status)


# favorites

@router.post("/listings/{listing_id}/favorite", response_model=schemas.ToggleResult)
def toggle_favorite(
    listing_id: int,
    user: schemas.AuthenticatedUser = Depends(current_user),
    mp: Marketplace = Depends(get_marketplace),
):
    return mp.toggle_favorite(user.id, listing_id)


@router.get("/favorites", response_model=List[schemas.ListingOut])
def list_favorites(
    user: schemas.AuthenticatedUser = Depends(current_user),
    mp: Marketplace = Depends(get_marketplace),
):
    return mp.list_favorites(user.id)


# messages

@router.post("/messages", response_model=schemas.MessageOut, status_code=201)
def send_message(
    payload: schemas.MessageCreate,
    user: schemas.AuthenticatedUser = Depends(current_user),
    mp: Marketplace = Depends(get_marketplace),
):
    return mp.send_message(user.id, payload.listing_id, payload.receiver_id, payload.content)


@router.get("/messages/unread")
def unread_messages(
    user: schemas.AuthenticatedUser = Depends(current_user),
    mp: Marketplace = Depends(get_marketplace),
):
    return {"unread": mp.conversations.unread_total(user.id)}


@router.post("/messages/{message_id}/read", response_model=schemas.MessageOut)
def mark_message_read(
    message_id: int,
    user: schemas.AuthenticatedUser = Depends(current_user),
    mp: Marketplace = Depends(get_marketplace),
):
    return mp.mark_read(user.id, message_id)


@router.get("/conversations", response_model=List[schemas.ConversationSummary])
def conversations(
    user: schemas.AuthenticatedUser = Depends(current_user),
    mp: Marketplace = Depends(get_marketplace),
):
    return mp.list_conversations(user.id)


@router.get("/conversations/{listing_id}/{counterpart_id}", response_model=List[schemas.MessageOut])
def thread(
    listing_id: int,
    counterpart_id: int,
    user: schemas.AuthenticatedUser = Depends(current_user),
    mp: Marketplace = Depends(get_marketplace),
):
    return mp.get_thread(user.id, listing_id, counterpart_id)


@router.post("/conversations/{listing_id}/{counterpart_id}/read")
def mark_thread_read(
    listing_id: int,
    counterpart_id: int,
    user: schemas.AuthenticatedUser = Depends(current_user),
    mp: Marketplace = Depends(get_marketplace),
):
    return {"marked": mp.conversations.mark_thread_read(user.id, listing_id, counterpart_id)}
