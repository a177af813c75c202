# classifieds/categories.py
"""Category tree: descendant expansion, breadcrumbs and acyclic parent updates.

Categories are held as an arena of (id, parent_id) pairs loaded from the
store. All walks are iterative with an explicit stack and a visited set, so
deep trees (and rows corrupted by hand) cannot blow the recursion limit or
loop forever.
"""
from typing import Dict, Iterable, List, Optional, Set, Tuple

from . import crud, schemas
from .db import AppContext
from .errors import CycleError, ValidationError
from .models import Category
from .utils import logger


def children_index(edges: Iterable[Tuple[int, Optional[int]]]) -> Dict[Optional[int], List[int]]:
    by_parent: Dict[Optional[int], List[int]] = {}
    for cid, pid in edges:
        by_parent.setdefault(pid, []).append(cid)
    for kids in by_parent.values():
        kids.sort()
    return by_parent


def walk_descendants(edges, root_id: int) -> Set[int]:
    by_parent = children_index(edges)
    stack = [root_id]
    seen: Set[int] = set()
    while stack:
        current = stack.pop()
        if current in seen:
            continue
        seen.add(current)
        for child in by_parent.get(current, []):
            if child not in seen:
                stack.append(child)
    return seen


def walk_ancestors(edges, category_id: int) -> List[int]:
    """Ids from `category_id` up to its root, nearest first."""
    parent_of = dict(edges)
    path = []
    seen = set()
    current = category_id
    while current is not None and current not in seen:
        seen.add(current)
        path.append(current)
        current = parent_of.get(current)
    return path


def _resolve_descendants(db, category_id: int) -> Set[int]:
    crud.get_category(db, category_id)
    return walk_descendants(crud.category_edges(db), category_id)


class CategoryTree:
    def __init__(self, ctx: AppContext):
        self.ctx = ctx

    def create_category(self, payload) -> schemas.CategoryOut:
        data = schemas.coerce(schemas.CategoryCreate, payload)

        def _create(db):
            if data.parent_id is not None and db.get(Category, data.parent_id) is None:
                raise ValidationError(f"parent category {data.parent_id} does not exist")
            obj = crud.insert_category(db, data.model_dump())
            logger.info("Created category %s (%s) under %s", obj.id, obj.slug, obj.parent_id)
            return schemas.CategoryOut.model_validate(obj)

        return self.ctx.run(_create)

    def set_parent(self, category_id: int, parent_id: Optional[int]) -> schemas.CategoryOut:
        """Move a category under `parent_id` (None makes it a root).

        Fails with CycleError when the new parent is the category itself or
        sits anywhere in its subtree.
        """
        def _move(db):
            obj = crud.get_category(db, category_id)
            if parent_id is not None:
                if db.get(Category, parent_id) is None:
                    raise ValidationError(f"parent category {parent_id} does not exist")
                if category_id in walk_ancestors(crud.category_edges(db), parent_id):
                    raise CycleError(
                        f"category {parent_id} is inside the subtree of {category_id}"
                    )
            obj.parent_id = parent_id
            db.flush()
            logger.info("Moved category %s under %s", category_id, parent_id)
            return schemas.CategoryOut.model_validate(obj)

        return self.ctx.run(_move)

    def get(self, category_id: int) -> schemas.CategoryOut:
        return self.ctx.run(
            lambda db: schemas.CategoryOut.model_validate(crud.get_category(db, category_id))
        )

    def list_all(self) -> List[schemas.CategoryOut]:
        def _list(db):
            rows = db.query(Category).order_by(Category.id.asc()).all()
            return [schemas.CategoryOut.model_validate(r) for r in rows]

        return self.ctx.run(_list)

    def resolve_descendants(self, category_id: int) -> Set[int]:
        return self.ctx.run(_resolve_descendants, category_id)

    def ancestors(self, category_id: int) -> List[int]:
        """Breadcrumb path, root first, ending with `category_id`."""
        def _path(db):
            crud.get_category(db, category_id)
            return list(reversed(walk_ancestors(crud.category_edges(db), category_id)))

        return self.ctx.run(_path)

    def tree(self) -> List[schemas.CategoryNode]:
        def _build(db):
            rows = db.query(Category).order_by(Category.id.asc()).all()
            nodes = {r.id: schemas.CategoryNode.model_validate(r) for r in rows}
            roots = []
            for node in nodes.values():
                parent = nodes.get(node.parent_id) if node.parent_id is not None else None
                if parent is None:
                    roots.append(node)
                else:
                    parent.children.append(node)
            return roots

        return self.ctx.run(_build)
