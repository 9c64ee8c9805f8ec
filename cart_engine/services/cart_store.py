# cart_engine/services/cart_store.py
import json
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, List, Tuple

import redis
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cart_engine.data.models.cart_line import CartLineModel
from cart_engine.data.redis_client import get_redis
from cart_engine.repos.cart_repo import CartRepo
from cart_engine.domain.errors import CartValidationError, ConcurrencyConflict
from cart_engine.domain.schemas import CartLine, Identity, LineDraft, PricingAnnotations
from cart_engine.services.change_feed import ChangeFeed
from cart_engine.utils.logging import get_logger
from cart_engine.utils.retry import redis_retry
from cart_engine.utils.settings import GUEST_CART_TTL_SECONDS

logger = get_logger(__name__)

_BUNDLE_FIELDS = ("special_offer_id", "special_offer_price", "bundle_quantity")


def merge_annotations(existing: PricingAnnotations, incoming: PricingAnnotations) -> PricingAnnotations:
    """Ceny linii po scaleniu dwoch dodan tego samego produktu/wariantu."""
    merged = existing.model_copy()

    if incoming.original_price is not None:
        merged.original_price = incoming.original_price
    if incoming.variant_id:
        merged.variant_id = incoming.variant_id

    if incoming.is_bulk_order:
        merged.is_bulk_order = True
        merged.bulk_tier_id = incoming.bulk_tier_id
        merged.bulk_price = incoming.bulk_price
        merged.bulk_savings = incoming.bulk_savings

    if incoming.special_offer_id and incoming.bundle_count > 0:
        #linia moze nalezec tylko do jednego pakietu
        if existing.bundle_count > 0 and existing.special_offer_id != incoming.special_offer_id:
            raise CartValidationError(
                f"Linia nalezy juz do pakietu {existing.special_offer_id}",
                item_ref=existing.special_offer_id,
            )
        for field in _BUNDLE_FIELDS:
            setattr(merged, field, getattr(incoming, field))
        merged.bundle_count = existing.bundle_count + incoming.bundle_count

    return merged


def clamp_bundle(annotations: PricingAnnotations, quantity: int) -> PricingAnnotations:
    """Po zmniejszeniu ilosci linia nie moze miec wiecej pakietow niz sztuk."""
    if annotations.bundle_count <= 0:
        return annotations

    clamped = annotations.model_copy()
    clamped.bundle_count = min(annotations.bundle_count, quantity // (annotations.bundle_quantity or 1))
    if clamped.bundle_count == 0:
        for field in _BUNDLE_FIELDS:
            setattr(clamped, field, None)
    return clamped


class CartStore(ABC):
    """Wspolny kontrakt koszyka goscia i koszyka zalogowanego uzytkownika."""

    identity: Identity

    @property
    def owner_ref(self) -> str:
        return self.identity.owner_ref

    @abstractmethod
    def list(self) -> List[CartLine]:
        ...

    @abstractmethod
    def add_lines(self, drafts: List[LineDraft]) -> List[CartLine]:
        """Wszystkie linie zapisane razem albo zadna."""

    @abstractmethod
    def remove_line(self, line_id: str) -> None:
        ...

    @abstractmethod
    def update_quantity(self, line_id: str, quantity: int, expected_version: int | None = None) -> None:
        ...

    @abstractmethod
    def reprice_lines(self, repriced: dict) -> None:
        """Nadpisanie adnotacji cenowych, ``{line_id: PricingAnnotations}``."""

    @abstractmethod
    def destroy(self) -> None:
        ...

    def has_imported(self, source_id: str) -> bool:
        return False

    def add_line(
        self,
        product_id: str,
        quantity: int,
        size: str | None = None,
        color: str | None = None,
        annotations: PricingAnnotations | None = None,
        source_id: str | None = None,
    ) -> CartLine:
        draft = LineDraft(
            product_id=product_id,
            quantity=quantity,
            size=size or "",
            color=color or "",
            annotations=annotations or PricingAnnotations(),
            source_id=source_id,
        )
        return self.add_lines([draft])[0]

    def find_line(self, product_id: str, size: str | None = None, color: str | None = None) -> CartLine | None:
        size, color = size or "", color or ""
        for line in self.list():
            if line.product_id == product_id and line.size == size and line.color == color:
                return line
        return None

    def get_line(self, line_id: str) -> CartLine | None:
        for line in self.list():
            if line.id == line_id:
                return line
        return None


class RemoteCartStore(CartStore):
    """Koszyk zalogowanego uzytkownika - tabela cart_lines."""

    def __init__(self, db: Session, user_id: int, feed: ChangeFeed | None = None):
        self.identity = Identity(user_id=user_id)
        self.user_id = user_id
        self.repo = CartRepo(db)
        self.feed = feed

    def _to_line(self, row: CartLineModel) -> CartLine:
        return CartLine(
            id=str(row.id),
            owner_ref=self.owner_ref,
            product_id=row.product_id,
            size=row.size,
            color=row.color,
            quantity=row.quantity,
            version=row.version,
            variant_id=row.variant_id,
            original_price=row.original_price,
            is_bulk_order=row.is_bulk_order,
            bulk_tier_id=row.bulk_tier_id,
            bulk_price=row.bulk_price,
            bulk_savings=row.bulk_savings,
            special_offer_id=row.special_offer_id,
            special_offer_price=row.special_offer_price,
            bundle_quantity=row.bundle_quantity,
            bundle_count=row.bundle_count or 0,
            added_at=row.created_at,
            updated_at=row.updated_at,
        )

    @staticmethod
    def _line_id(line_id: str) -> int | None:
        try:
            return int(line_id)
        except (TypeError, ValueError):
            return None

    def _notify(self):
        if self.feed is not None:
            self.feed.publish(self.owner_ref)

    def list(self) -> List[CartLine]:
        #zawsze swiezy odczyt z bazy, bez cache sesji
        self.repo.db.expire_all()
        return [self._to_line(row) for row in self.repo.list_lines(self.user_id)]

    def find_line(self, product_id: str, size: str | None = None, color: str | None = None) -> CartLine | None:
        row = self.repo.find_line(self.user_id, product_id, size or "", color or "")
        return self._to_line(row) if row else None

    def has_imported(self, source_id: str) -> bool:
        return self.repo.has_import(self.user_id, source_id)

    def add_lines(self, drafts: List[LineDraft]) -> List[CartLine]:
        line_ids = []
        try:
            for draft in drafts:
                row = self.repo.find_line(self.user_id, draft.product_id, draft.size, draft.color)

                if row:
                    logger.info(
                        f"Produkt {draft.product_id} ({draft.size}/{draft.color}) juz jest w koszyku {self.owner_ref}, "
                        f"zwiekszam ilosc z {row.quantity} do {row.quantity + draft.quantity}"
                    )
                    line_id = row.id
                    merged = merge_annotations(self._to_line(row).annotations(), draft.annotations)

                    # update ... where id = :id and version = :odczytana - rownolegle dodanie nie zginie
                    rowcount = self.repo.update_line_version(
                        owner_id=self.user_id,
                        line_id=line_id,
                        old_version=row.version,
                        new_data={
                            **merged.model_dump(),
                            "quantity": row.quantity + draft.quantity,
                            "version": row.version + 1,
                            "updated_at": datetime.now(timezone.utc),
                        },
                    )
                    if rowcount == 0:
                        raise ConcurrencyConflict(
                            "Konflikt wspolbieznosci - linia zostala zmodyfikowana przez inna operacje",
                            item_ref=str(line_id),
                        )
                else:
                    logger.info(f"Dodaje nowy produkt {draft.product_id} do koszyka {self.owner_ref}")
                    row = self.repo.add_line(
                        CartLineModel(
                            owner_id=self.user_id,
                            product_id=draft.product_id,
                            size=draft.size,
                            color=draft.color,
                            quantity=draft.quantity,
                            version=1,
                            **draft.annotations.model_dump(),
                        )
                    )
                    line_id = row.id

                if draft.source_id:
                    self.repo.add_import(self.user_id, draft.source_id)
                line_ids.append(line_id)

            self.repo.commit()
        except IntegrityError as e:
            #ktos inny wstawil ta sama linie w miedzyczasie
            self.repo.rollback()
            raise ConcurrencyConflict("Konflikt wspolbieznosci - linia zostala dodana przez inna operacje") from e
        except Exception:
            self.repo.rollback()
            raise

        self._notify()
        return [self._to_line(self.repo.get_line(self.user_id, pk)) for pk in line_ids]

    def remove_line(self, line_id: str) -> None:
        pk = self._line_id(line_id)
        if pk is None:
            return

        try:
            removed = self.repo.delete_line(self.user_id, pk)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        #usuniecie nieistniejacej linii to nie blad
        if removed:
            logger.info(f"Linia {line_id} usunieta z koszyka {self.owner_ref}")
            self._notify()

    def update_quantity(self, line_id: str, quantity: int, expected_version: int | None = None) -> None:
        if quantity <= 0:
            self.remove_line(line_id)
            return

        pk = self._line_id(line_id)
        row = self.repo.get_line(self.user_id, pk) if pk is not None else None
        if row is None:
            raise CartValidationError(f"Linia {line_id} nie istnieje", item_ref=line_id)

        old_version = row.version if expected_version is None else expected_version
        annotations = clamp_bundle(self._to_line(row).annotations(), quantity)

        try:
            rowcount = self.repo.update_line_version(
                owner_id=self.user_id,
                line_id=pk,
                old_version=old_version,
                new_data={
                    "quantity": quantity,
                    "version": old_version + 1,
                    "bundle_count": annotations.bundle_count,
                    "special_offer_id": annotations.special_offer_id,
                    "special_offer_price": annotations.special_offer_price,
                    "bundle_quantity": annotations.bundle_quantity,
                    "updated_at": datetime.now(timezone.utc),
                },
            )
        except Exception:
            self.repo.rollback()
            raise

        if rowcount == 0:
            self.repo.rollback()
            raise ConcurrencyConflict(
                "Konflikt wspolbieznosci - linia zostala zmodyfikowana przez inna operacje",
                item_ref=line_id,
            )

        self.repo.commit()
        logger.info(f"Linia {line_id} w koszyku {self.owner_ref}: ilosc {quantity}, wersja {old_version + 1}")
        self._notify()

    def reprice_lines(self, repriced: dict) -> None:
        if not repriced:
            return
        try:
            for line_id, annotations in repriced.items():
                row = self.repo.get_line(self.user_id, int(line_id))
                if row is None:
                    continue
                row.is_bulk_order = annotations.is_bulk_order
                row.bulk_tier_id = annotations.bulk_tier_id
                row.bulk_price = annotations.bulk_price
                row.bulk_savings = annotations.bulk_savings
                row.original_price = annotations.original_price
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise
        self._notify()

    def destroy(self) -> None:
        try:
            self.repo.delete_all(self.user_id)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise
        self._notify()


class GuestCartStore(CartStore):
    """
    Koszyk goscia w redisie - jeden klucz JSON na token sesji
    klucz wygasa po GUEST_CART_TTL_SECONDS bez aktywnosci
    kazda zmiana: WATCH klucza -> odczyt -> MULTI/SET, rownolegly zapis = ponowienie
    """

    def __init__(self, session_token: str, client: redis.Redis | None = None, ttl: int = GUEST_CART_TTL_SECONDS):
        self.identity = Identity(session_token=session_token)
        self.session_token = session_token
        self.redis = client or get_redis()
        self.ttl = ttl

    @staticmethod
    def key_for(session_token: str) -> str:
        return f"guest_cart:{session_token}"

    @property
    def key(self) -> str:
        return self.key_for(self.session_token)

    @redis_retry()
    def _load(self) -> dict | None:
        raw = self.redis.get(self.key)
        if not raw:
            return None
        return json.loads(raw)

    def _lines(self, cart: dict | None) -> List[CartLine]:
        if not cart:
            return []
        return [CartLine.model_validate(item) for item in cart["items"]]

    def _empty_cart(self) -> dict:
        now = datetime.now(timezone.utc).isoformat()
        return {"items": [], "created_at": now, "updated_at": now}

    @redis_retry()
    def _transact(self, change: Callable[[List[CartLine]], Tuple[List[CartLine] | None, Any]]):
        """
        change(linie) -> (nowe linie albo None gdy nic do zapisu, wynik)
        jesli ktos zapisze klucz miedzy GET a EXEC, redis odrzuci transakcje i change idzie jeszcze raz
        """

        def run(pipe):
            raw = pipe.get(self.key)
            cart = json.loads(raw) if raw else self._empty_cart()

            lines, result = change(self._lines(cart))
            if lines is not None:
                cart["items"] = [line.model_dump(mode="json") for line in lines]
                cart["updated_at"] = datetime.now(timezone.utc).isoformat()
                pipe.multi()
                pipe.set(self.key, json.dumps(cart), ex=self.ttl)
            return result

        return self.redis.transaction(run, self.key, value_from_callable=True)

    def list(self) -> List[CartLine]:
        return self._lines(self._load())

    def _merge_drafts(self, lines: List[CartLine], drafts: List[LineDraft]) -> List[str]:
        now = datetime.now(timezone.utc)
        touched = []

        for draft in drafts:
            index = next(
                (
                    i for i, l in enumerate(lines)
                    if l.product_id == draft.product_id and l.size == draft.size and l.color == draft.color
                ),
                None,
            )

            if index is not None:
                line = lines[index]
                merged = merge_annotations(line.annotations(), draft.annotations)
                line = line.model_copy(
                    update={
                        **merged.model_dump(),
                        "quantity": line.quantity + draft.quantity,
                        "version": line.version + 1,
                        "updated_at": now,
                    }
                )
                lines[index] = line
            else:
                line = CartLine(
                    id=f"guest_{uuid.uuid4().hex}",
                    owner_ref=self.owner_ref,
                    product_id=draft.product_id,
                    size=draft.size,
                    color=draft.color,
                    quantity=draft.quantity,
                    added_at=now,
                    **draft.annotations.model_dump(),
                )
                lines.append(line)
            touched.append(line.id)

        return touched

    def add_lines(self, drafts: List[LineDraft]) -> List[CartLine]:
        def change(lines):
            #wszystko w pamieci, zapis jednym SET - albo wszystkie linie albo zadna
            touched = self._merge_drafts(lines, drafts)
            by_id = {l.id: l for l in lines}
            return lines, [by_id[line_id] for line_id in touched]

        written = self._transact(change)
        logger.info(f"Koszyk {self.owner_ref}: zapisano {len(drafts)} linii")
        return written

    def remove_line(self, line_id: str) -> None:
        def change(lines):
            remaining = [l for l in lines if l.id != line_id]
            if len(remaining) == len(lines):
                return None, False
            return remaining, True

        if self._transact(change):
            logger.info(f"Linia {line_id} usunieta z koszyka {self.owner_ref}")

    def update_quantity(self, line_id: str, quantity: int, expected_version: int | None = None) -> None:
        if quantity <= 0:
            self.remove_line(line_id)
            return

        def change(lines):
            index = next((i for i, l in enumerate(lines) if l.id == line_id), None)
            if index is None:
                raise CartValidationError(f"Linia {line_id} nie istnieje", item_ref=line_id)

            line = lines[index]
            if expected_version is not None and line.version != expected_version:
                raise ConcurrencyConflict(
                    "Konflikt wspolbieznosci - linia zostala zmodyfikowana przez inna operacje",
                    item_ref=line_id,
                )

            annotations = clamp_bundle(line.annotations(), quantity)
            lines[index] = line.model_copy(
                update={
                    **annotations.model_dump(),
                    "quantity": quantity,
                    "version": line.version + 1,
                    "updated_at": datetime.now(timezone.utc),
                }
            )
            return lines, None

        self._transact(change)

    def reprice_lines(self, repriced: dict) -> None:
        if not repriced:
            return

        def change(lines):
            if not lines:
                return None, None
            updated = []
            for line in lines:
                annotations = repriced.get(line.id)
                if annotations is not None:
                    line = line.model_copy(
                        update={
                            "is_bulk_order": annotations.is_bulk_order,
                            "bulk_tier_id": annotations.bulk_tier_id,
                            "bulk_price": annotations.bulk_price,
                            "bulk_savings": annotations.bulk_savings,
                            "original_price": annotations.original_price,
                        }
                    )
                updated.append(line)
            return updated, None

        self._transact(change)

    @redis_retry()
    def destroy(self) -> None:
        #klucz znika calkowicie, nie tylko pusta lista
        self.redis.delete(self.key)
        logger.info(f"Koszyk {self.owner_ref} usuniety")


def select_store(
    identity: Identity,
    db: Session | None = None,
    client: redis.Redis | None = None,
    feed: ChangeFeed | None = None,
) -> CartStore:
    """Wybor backendu tylko na podstawie tozsamosci w momencie wywolania."""
    if identity.is_authenticated:
        if db is None:
            raise ValueError("Koszyk uzytkownika wymaga sesji bazy danych")
        return RemoteCartStore(db, identity.user_id, feed=feed)
    return GuestCartStore(identity.session_token, client=client)
