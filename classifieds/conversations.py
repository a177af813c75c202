# classifieds/conversations.py
"""Per-listing buyer/seller threads derived from raw message rows."""
from typing import Dict, List, Tuple

from sqlalchemy import func, or_

from . import crud, schemas
from .db import AppContext
from .errors import AuthorizationError, ValidationError
from .models import Listing, Message, User
from .utils import logger

PREVIEW_CHARS = 80


def _preview(content: str) -> str:
    if len(content) <= PREVIEW_CHARS:
        return content
    return content[: PREVIEW_CHARS - 1].rstrip() + "…"


class ConversationAggregator:
    def __init__(self, ctx: AppContext):
        self.ctx = ctx

    def send_message(self, sender_id: int, listing_id: int, receiver_id: int, content: str) -> schemas.MessageOut:
        """Post a message about a listing.

        One side of the pair has to be the listing's seller. The message starts
        unread and nothing else (favorites, listing status) is touched.
        """
        if not isinstance(content, str) or not 1 <= len(content) <= crud.CONTENT_MAX:
            raise ValidationError(f"message content must be 1-{crud.CONTENT_MAX} characters")
        if sender_id == receiver_id:
            raise ValidationError("cannot send a message to yourself")

        def _send(db):
            listing = crud.get_listing(db, listing_id)
            crud.get_user(db, sender_id)
            crud.get_user(db, receiver_id)
            if listing.seller_id not in (sender_id, receiver_id):
                raise ValidationError("messages about a listing must involve its seller")
            msg = crud.insert_message(db, listing_id, sender_id, receiver_id, content)
            logger.info("Message %s on listing %s: %s -> %s", msg.id, listing_id, sender_id, receiver_id)
            return schemas.MessageOut.model_validate(msg)

        return self.ctx.run(_send)

    def list_conversations(self, user_id: int) -> List[schemas.ConversationSummary]:
        """One summary per (listing, counterpart), most recently active first."""
        def _aggregate(db):
            threads: Dict[Tuple[int, int], dict] = {}
            for msg in crud.messages_for_user(db, user_id).yield_per(500):
                counterpart = msg.receiver_id if msg.sender_id == user_id else msg.sender_id
                key = (msg.listing_id, counterpart)
                t = threads.setdefault(key, {"unread": 0})
                # rows arrive oldest first, so the last one seen wins
                t["last"] = msg
                if msg.receiver_id == user_id and not msg.read:
                    t["unread"] += 1
            if not threads:
                return []

            listing_ids = {lid for lid, _ in threads}
            user_ids = {uid for _, uid in threads}
            titles = dict(db.query(Listing.id, Listing.title).filter(Listing.id.in_(listing_ids)).all())
            names = dict(db.query(User.id, User.display_name).filter(User.id.in_(user_ids)).all())

            ordered = sorted(
                threads.items(),
                key=lambda kv: (kv[1]["last"].created_at, kv[1]["last"].id),
                reverse=True,
            )
            return [
                schemas.ConversationSummary(
                    listing_id=lid,
                    listing_title=titles.get(lid),
                    counterpart_id=cid,
                    counterpart_name=names.get(cid),
                    last_message=_preview(t["last"].content),
                    last_message_at=t["last"].created_at,
                    unread_count=t["unread"],
                )
                for (lid, cid), t in ordered
            ]

        return self.ctx.run(_aggregate)

    def _check_party(self, db, user_id: int, listing_id: int, counterpart_id: int):
        if user_id == counterpart_id:
            raise ValidationError("a thread needs two different users")
        listing = crud.get_listing(db, listing_id)
        if listing.seller_id not in (user_id, counterpart_id):
            raise AuthorizationError("you are not part of this conversation")
        return listing

    def get_thread(self, user_id: int, listing_id: int, counterpart_id: int) -> List[schemas.MessageOut]:
        """Full history between `user_id` and `counterpart_id` on a listing, oldest first."""
        def _thread(db):
            self._check_party(db, user_id, listing_id, counterpart_id)
            rows = (
                db.query(Message)
                .filter(
                    Message.listing_id == listing_id,
                    or_(
                        (Message.sender_id == user_id) & (Message.receiver_id == counterpart_id),
                        (Message.sender_id == counterpart_id) & (Message.receiver_id == user_id),
                    ),
                )
                .order_by(Message.created_at.asc(), Message.id.asc())
                .all()
            )
            return [schemas.MessageOut.model_validate(m) for m in rows]

        return self.ctx.run(_thread)

    def mark_read(self, user_id: int, message_id: int) -> schemas.MessageOut:
        """Mark one message read. Only its receiver may do so; repeating is a no-op."""
        def _mark(db):
            msg = crud.get_message(db, message_id)
            if msg.receiver_id != user_id:
                raise AuthorizationError("only the receiver can mark a message read")
            if crud.mark_read(db, user_id, message_id=message_id):
                db.refresh(msg)
            return schemas.MessageOut.model_validate(msg)

        return self.ctx.run(_mark)

    def mark_thread_read(self, user_id: int, listing_id: int, counterpart_id: int) -> int:
        def _mark(db):
            self._check_party(db, user_id, listing_id, counterpart_id)
            return crud.mark_read(db, user_id, listing_id=listing_id, sender_id=counterpart_id)

        changed = self.ctx.run(_mark)
        if changed:
            logger.info("User %s read %d messages on listing %s", user_id, changed, listing_id)
        return changed

    def unread_total(self, user_id: int) -> int:
        def _count(db):
            return int(
                db.query(func.count(Message.id))
                .filter(Message.receiver_id == user_id, Message.read.is_(False))
                .scalar() or 0
            )

        return self.ctx.run(_count)
