# cart_engine/services/optimistic_controller.py
"""
Optymistyczny stan koszyka dla jednego klienta.

Kazda zmiana to ``Command``: ``apply`` od razu zmienia widok w pamieci,
``commit`` robi trwaly zapis, ``compensate`` przywraca dokladnie te wartosci,
ktore byly przed ``apply``, jesli zapis sie nie uda. Po udanym zapisie
widok jest odbudowywany z ``list()``.

Bledy nie wychodza z tego modulu jako wyjatki - wywolujacy dostaje
``MutationResult`` z rodzajem bledu i, jesli wiadomo, problematyczna pozycja.
"""

import threading
from dataclasses import dataclass, field
from typing import Callable, List, Sequence

from cart_engine.domain.errors import AuthorizationRequired, BackendFailure, CartError, CartValidationError
from cart_engine.domain.schemas import (
    BulkVariantIn,
    CartLine,
    ComponentSelection,
    Identity,
    MigrationReport,
    MutationResult,
)
from cart_engine.services.cart_service import CartService
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Command:
    label: str
    apply: Callable[[], None]
    commit: Callable[[], object]
    compensate: Callable[[], None] | None = None
    version: int = field(default=0)


class OptimisticCartController:
    def __init__(
        self,
        identity: Identity,
        service_factory: Callable[[Identity], CartService],
        wishlist_factory: Callable | None = None,
    ):
        self.identity = identity
        self.service_factory = service_factory
        self.wishlist_factory = wishlist_factory

        self.lines: List[CartLine] = []
        self.count = 0
        self.wishlist_count = 0

        #monotoniczny licznik zmian stanu - starsza kompensacja nie nadpisze nowszej zmiany
        self._version = 0
        self._lock = threading.RLock()

    def service(self) -> CartService:
        #backend wybierany przy kazdym wywolaniu, wg aktualnej tozsamosci
        return self.service_factory(self.identity)

    # --- state ---

    def refresh(self) -> bool:
        try:
            lines = self.service().list_lines()
        except Exception as e:
            logger.warning(f"Refresh koszyka {self.identity.owner_ref} nieudany: {e}")
            return False

        with self._lock:
            self.lines = lines
            self.count = sum(l.quantity for l in lines)
            self._version += 1
        return True

    def refresh_wishlist(self) -> bool:
        if self.wishlist_factory is None or not self.identity.is_authenticated:
            return False
        try:
            items = self.wishlist_factory(self.identity).list_items()
        except Exception as e:
            logger.warning(f"Refresh wishlisty {self.identity.owner_ref} nieudany: {e}")
            return False

        with self._lock:
            self.wishlist_count = len(items)
        return True

    def watch(self, feed):
        """Subskrypcja zmian z backendu - kazda wiadomosc to refresh."""
        return feed.subscribe(self.identity.owner_ref, self.refresh)

    def _snapshot(self):
        return list(self.lines), self.count, self.wishlist_count

    def _restorer(self, snapshot, command: Command) -> Callable[[], None]:
        lines, count, wishlist_count = snapshot

        def compensate():
            with self._lock:
                if self._version == command.version:
                    self.lines = lines
                    self.count = count
                    self.wishlist_count = wishlist_count
                    return
            #w miedzyczasie byla inna zmiana - zrodlem prawdy jest backend
            logger.warning(f"{command.label}: stan zmieniony w trakcie, odswiezam zamiast przywracac")
            self.refresh()

        return compensate

    def _run(self, command: Command, refresh: Callable[[], bool] | None = None) -> MutationResult:
        with self._lock:
            snapshot = self._snapshot()
            command.apply()
            self._version += 1
            command.version = self._version
            if command.compensate is None:
                command.compensate = self._restorer(snapshot, command)

        try:
            value = command.commit()
        except CartError as e:
            command.compensate()
            logger.error(f"{command.label} nieudane ({e.kind.value}): {e.message}")
            return MutationResult(ok=False, kind=e.kind, message=e.message, item_ref=e.item_ref)
        except Exception as e:
            command.compensate()
            failure = BackendFailure(f"{command.label}: blad backendu ({e})")
            logger.error(failure.message)
            return MutationResult(ok=False, kind=failure.kind, message=failure.message)

        (refresh or self.refresh)()
        return MutationResult(ok=True, line=value if isinstance(value, CartLine) else None)

    @staticmethod
    def _rejected(error: CartError) -> MutationResult:
        return MutationResult(ok=False, kind=error.kind, message=error.message, item_ref=error.item_ref)

    # --- cart ---

    def add_line(self, product_id: str, quantity: int = 1, size: str | None = None, color: str | None = None) -> MutationResult:
        if quantity <= 0:
            return self._rejected(CartValidationError("Ilosc musi byc wieksza niz 0", item_ref=product_id))

        def apply():
            self.count += quantity

        command = Command(
            label=f"Dodanie {product_id}",
            apply=apply,
            commit=lambda: self.service().add_product(product_id, quantity, size, color),
        )
        return self._run(command)

    def add_bulk_order(self, product_id: str, variants: Sequence[BulkVariantIn]) -> MutationResult:
        if not variants or any(v.quantity <= 0 for v in variants):
            return self._rejected(CartValidationError("Nieprawidlowe warianty zamowienia hurtowego", item_ref=product_id))

        total = sum(v.quantity for v in variants)

        def apply():
            self.count += total

        command = Command(
            label=f"Zamowienie hurtowe {product_id}",
            apply=apply,
            commit=lambda: self.service().add_bulk_order(product_id, variants),
        )
        return self._run(command)

    def add_bundle(self, offer_id: str, selections: Sequence[ComponentSelection]) -> MutationResult:
        if not selections:
            return self._rejected(
                CartValidationError("Wybierz warianty dla wszystkich produktow pakietu", item_ref=offer_id)
            )

        #ilosc sztuk znana dopiero z definicji oferty (odczyt, bez zapisu)
        try:
            offer = self.service().get_offer(offer_id)
        except CartError as e:
            return self._rejected(e)
        except Exception as e:
            return self._rejected(BackendFailure(f"Odczyt oferty {offer_id} nieudany ({e})"))

        total = sum(c.quantity for c in offer.components)

        def apply():
            self.count += total

        command = Command(
            label=f"Pakiet {offer_id}",
            apply=apply,
            commit=lambda: self.service().add_bundle(offer_id, selections),
        )
        return self._run(command)

    def update_quantity(self, line_id: str, quantity: int) -> MutationResult:
        line = next((l for l in self.lines if l.id == line_id), None)
        if line is None:
            return self._rejected(CartValidationError(f"Linia {line_id} nie istnieje", item_ref=line_id))

        if quantity <= 0:
            return self.remove_line(line_id)

        def apply():
            self.count += quantity - line.quantity
            self.lines = [l.model_copy(update={"quantity": quantity}) if l.id == line_id else l for l in self.lines]

        command = Command(
            label=f"Zmiana ilosci {line_id}",
            apply=apply,
            commit=lambda: self.service().update_quantity(line_id, quantity, expected_version=line.version),
        )
        return self._run(command)

    def remove_line(self, line_id: str) -> MutationResult:
        line = next((l for l in self.lines if l.id == line_id), None)
        if line is None:
            #nic do usuniecia - operacja idempotentna
            return MutationResult(ok=True)

        def apply():
            self.count -= line.quantity
            self.lines = [l for l in self.lines if l.id != line_id]

        command = Command(
            label=f"Usuniecie {line_id}",
            apply=apply,
            commit=lambda: self.service().remove_line(line_id),
        )
        return self._run(command)

    # --- wishlist ---

    def add_to_wishlist(self, product_id: str) -> MutationResult:
        if not self.identity.is_authenticated or self.wishlist_factory is None:
            return self._rejected(AuthorizationRequired("Zaloguj sie, aby dodac produkt do listy zyczen", item_ref=product_id))

        def apply():
            self.wishlist_count += 1

        command = Command(
            label=f"Wishlist + {product_id}",
            apply=apply,
            commit=lambda: self.wishlist_factory(self.identity).add_item(product_id),
        )
        return self._run(command, refresh=self.refresh_wishlist)

    def remove_from_wishlist(self, item_id: int) -> MutationResult:
        if not self.identity.is_authenticated or self.wishlist_factory is None:
            return self._rejected(AuthorizationRequired("Zaloguj sie, aby zarzadzac lista zyczen"))

        def apply():
            self.wishlist_count = max(0, self.wishlist_count - 1)

        command = Command(
            label=f"Wishlist - {item_id}",
            apply=apply,
            commit=lambda: self.wishlist_factory(self.identity).remove_item(item_id),
        )
        return self._run(command, refresh=self.refresh_wishlist)

    # --- identity ---

    def on_authenticated(self, user_id: int, migrate: Callable[[Identity, Identity], MigrationReport]) -> MigrationReport:
        """
        Przelaczenie na koszyk uzytkownika. Koszyk goscia scalany raz, tylko przy przejsciu gosc -> uzytkownik.
        Nieudana migracja nie blokuje logowania - linie zostaja w koszyku goscia do ponownej proby.
        """
        previous = self.identity
        if previous.is_authenticated:
            if previous.user_id != user_id:
                self.identity = Identity(user_id=user_id)
                self.refresh()
            return MigrationReport(ran=False)

        current = Identity(user_id=user_id)
        try:
            report = migrate(previous, current)
        except Exception as e:
            logger.error(f"Migracja koszyka {previous.owner_ref} -> {current.owner_ref} nieudana: {e}")
            report = MigrationReport(ran=False, error=str(e))

        self.identity = current
        self.refresh()
        self.refresh_wishlist()
        return report
