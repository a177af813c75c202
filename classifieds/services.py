# classifieds/services.py
"""Function-level contracts consumed by the HTTP layer.

`Marketplace` wires every component to one `AppContext` and exposes the
operations under the names the boundary uses.
"""
from .categories import CategoryTree
from .conversations import ConversationAggregator
from .db import AppContext
from .favorites import FavoriteRegistry
from .search import ListingQueryEngine
from .store import EntityStore


class Marketplace:
    def __init__(self, ctx: AppContext):
        self.ctx = ctx
        self.store = EntityStore(ctx)
        self.categories = CategoryTree(ctx)
        self.listings = ListingQueryEngine(ctx)
        self.conversations = ConversationAggregator(ctx)
        self.favorites = FavoriteRegistry(ctx)

    # listings
    def search(self, filter=None, **kwargs):
        return self.listings.search(filter, **kwargs)

    def get_listing(self, listing_id: int, viewer_id=None):
        return self.store.get_listing(listing_id, viewer_id)

    def create_listing(self, seller_id: int, payload):
        return self.store.create_listing(seller_id, payload)

    def update_listing_status(self, listing_id: int, caller_id: int, new_status):
        return self.store.update_listing_status(listing_id, caller_id, new_status)

    # messages
    def send_message(self, sender_id: int, listing_id: int, receiver_id: int, content: str):
        return self.conversations.send_message(sender_id, listing_id, receiver_id, content)

    def list_conversations(self, user_id: int):
        return self.conversations.list_conversations(user_id)

    def get_thread(self, user_id: int, listing_id: int, counterpart_id: int):
        return self.conversations.get_thread(user_id, listing_id, counterpart_id)

    def mark_read(self, user_id: int, message_id: int):
        return self.conversations.mark_read(user_id, message_id)

    # favorites
    def toggle_favorite(self, user_id: int, listing_id: int):
        return self.favorites.toggle(user_id, listing_id)

    def list_favorites(self, user_id: int):
        return self.favorites.list_favorites(user_id)
