# api/catalog/views.py
"""
Content collection endpoints.

One router per content collection, built by `build_collection_router`. Each
route carries its own guard with a fixed (collection, action) pair, so the
permission a route needs can be read straight off its declaration.
"""
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_session
from db_models.catalog_entry import EntryStatus
from core.deps import require_collection_permission
from core.exceptions import BadRequestError, ConflictError, NotFoundError
from core.permissions import CONTENT_COLLECTIONS, Action
from core.principal import AuthenticatedUser, Collection
from .models import DropdownItem, EntryCreate, EntryRead, EntryUpdate, ModerationRequest
from . import db_manager


def build_collection_router(collection: Collection) -> APIRouter:
    """Router for `/<collection>` with VIEW/ADD/EDIT/MODERATE/DELETE/MANAGE routes."""
    router = APIRouter(prefix=f"/{collection.value}", tags=[collection.value])

    can_view = require_collection_permission(collection, Action.VIEW)
    can_add = require_collection_permission(collection, Action.ADD)
    can_edit = require_collection_permission(collection, Action.EDIT)
    can_moderate = require_collection_permission(collection, Action.MODERATE)
    can_delete = require_collection_permission(collection, Action.DELETE)
    can_manage = require_collection_permission(collection, Action.MANAGE)

    @router.get("", response_model=list[EntryRead], summary=f"List {collection.value}")
    async def list_entries(
        user: AuthenticatedUser = Depends(can_view),
        db: AsyncSession = Depends(get_session),
        entry_status: EntryStatus | None = Query(None, alias="status"),
        search: str | None = None,
        skip: int = Query(0, ge=0),
        limit: int = Query(20, ge=1, le=100),
    ) -> list[EntryRead]:
        entries = await db_manager.list_entries(
            db, collection, status=entry_status, search=search, skip=skip, limit=limit
        )
        return [EntryRead.model_validate(e) for e in entries]

    @router.get("/counts", response_model=dict[str, int], summary=f"Count {collection.value} by status")
    async def count_entries(
        user: AuthenticatedUser = Depends(can_view),
        db: AsyncSession = Depends(get_session),
    ) -> dict[str, int]:
        return await db_manager.count_entries(db, collection)

    @router.get("/dropdown", response_model=list[DropdownItem], summary=f"Published {collection.value} for select inputs")
    async def dropdown(
        user: AuthenticatedUser = Depends(can_view),
        db: AsyncSession = Depends(get_session),
    ) -> list[DropdownItem]:
        return [DropdownItem(**item) for item in await db_manager.dropdown(db, collection)]

    @router.get("/{slug}", response_model=EntryRead, summary=f"Get one of {collection.value}")
    async def get_entry(
        slug: str,
        user: AuthenticatedUser = Depends(can_view),
        db: AsyncSession = Depends(get_session),
    ) -> EntryRead:
        try:
            entry = await db_manager.get_entry(db, collection, slug)
        except db_manager.EntryNotFoundError as exc:
            raise NotFoundError(str(exc)) from exc
        return EntryRead.model_validate(entry)

    @router.post(
        "",
        response_model=EntryRead,
        status_code=status.HTTP_201_CREATED,
        summary=f"Add to {collection.value}",
    )
    async def create_entry(
        payload: EntryCreate,
        request: Request,
        user: AuthenticatedUser = Depends(can_add),
        db: AsyncSession = Depends(get_session),
    ) -> EntryRead:
        try:
            entry = await db_manager.create_entry(
                db,
                user,
                collection,
                slug=payload.slug,
                title=payload.title,
                data=payload.data,
                status=payload.status,
                request=request,
            )
        except db_manager.DuplicateSlugError as exc:
            raise ConflictError(str(exc)) from exc
        except db_manager.EntryStatusError as exc:
            raise BadRequestError(str(exc)) from exc
        return EntryRead.model_validate(entry)

    @router.put("/{slug}", response_model=EntryRead, summary=f"Edit one of {collection.value}")
    async def update_entry(
        slug: str,
        payload: EntryUpdate,
        request: Request,
        user: AuthenticatedUser = Depends(can_edit),
        db: AsyncSession = Depends(get_session),
    ) -> EntryRead:
        changes = payload.model_dump(exclude_unset=True)
        if not changes:
            raise BadRequestError("Nothing to update")
        try:
            entry = await db_manager.update_entry(db, user, collection, slug, changes, request=request)
        except db_manager.EntryNotFoundError as exc:
            raise NotFoundError(str(exc)) from exc
        except db_manager.EntryStatusError as exc:
            raise BadRequestError(str(exc)) from exc
        return EntryRead.model_validate(entry)

    def add_moderation_route(step: str) -> None:
        @router.post(
            f"/{{slug}}/{step}",
            response_model=EntryRead,
            name=f"{step}_{collection.value}_entry",
            summary=f"{step.capitalize()} one of {collection.value}",
        )
        async def moderate(
            slug: str,
            request: Request,
            payload: ModerationRequest | None = None,
            user: AuthenticatedUser = Depends(can_moderate),
            db: AsyncSession = Depends(get_session),
        ) -> EntryRead:
            try:
                entry = await db_manager.moderate_entry(
                    db,
                    user,
                    collection,
                    slug,
                    step,
                    note=payload.note if payload else None,
                    request=request,
                )
            except db_manager.EntryNotFoundError as exc:
                raise NotFoundError(str(exc)) from exc
            except db_manager.EntryStatusError as exc:
                raise BadRequestError(str(exc)) from exc
            return EntryRead.model_validate(entry)

    for step in db_manager.MODERATION_TRANSITIONS:
        add_moderation_route(step)

    @router.delete("/{slug}", response_model=EntryRead, summary=f"Archive one of {collection.value}")
    async def archive_entry(
        slug: str,
        request: Request,
        user: AuthenticatedUser = Depends(can_delete),
        db: AsyncSession = Depends(get_session),
    ) -> EntryRead:
        """Soft delete: the entry moves to `archived`."""
        try:
            entry = await db_manager.archive_entry(db, user, collection, slug, request=request)
        except db_manager.EntryNotFoundError as exc:
            raise NotFoundError(str(exc)) from exc
        return EntryRead.model_validate(entry)

    @router.delete(
        "/{slug}/purge",
        status_code=status.HTTP_204_NO_CONTENT,
        summary=f"Permanently delete one of {collection.value}",
    )
    async def purge_entry(
        slug: str,
        request: Request,
        user: AuthenticatedUser = Depends(can_manage),
        db: AsyncSession = Depends(get_session),
    ) -> None:
        try:
            await db_manager.purge_entry(db, user, collection, slug, request=request)
        except db_manager.EntryNotFoundError as exc:
            raise NotFoundError(str(exc)) from exc

    return router


routers: list[APIRouter] = [build_collection_router(c) for c in CONTENT_COLLECTIONS]
