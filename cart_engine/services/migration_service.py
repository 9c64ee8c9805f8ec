# cart_engine/services/migration_service.py
from typing import Callable

from cart_engine.domain.schemas import MigrationReport
from cart_engine.services.cart_store import CartStore
from cart_engine.services.lock_service import LockService
from cart_engine.services.stock_service import StockReservationService
from cart_engine.utils.logging import get_logger
from cart_engine.utils.settings import MIGRATION_LOCK_TTL_SECONDS

logger = get_logger(__name__)


class MigrationReconciler:
    """
    Przeniesienie koszyka goscia do koszyka uzytkownika po zalogowaniu.

    1. odczyt wszystkich linii goscia
    2. dla kazdej: szukamy linii uzytkownika z tym samym produktem/rozmiarem/kolorem
    3. jest - ilosci sie sumuja (razem z adnotacjami cenowymi)
    4. nie ma - nowa linia z pelnymi danymi cenowymi
    5. po petli koszyk goscia jest usuwany

    Kazda przeniesiona linia od razu znika z koszyka goscia, wiec ponowne
    uruchomienie po awarii nie zdubluje ilosci. Linia, ktorej nie da sie
    przeniesc, jest logowana i pomijana - zostaje w koszyku goscia.
    Gdy zapis u uzytkownika przeszedl, a checkpoint nie, znacznik importu
    (id linii goscia) chroni przed ponownym dodaniem ilosci.
    """

    def __init__(
        self,
        lock_service: LockService | None = None,
        lock_ttl: int = MIGRATION_LOCK_TTL_SECONDS,
        stock: StockReservationService | None = None,
    ):
        self.lock_service = lock_service
        self.lock_ttl = lock_ttl
        self.stock = stock

    def run(
        self,
        local: CartStore,
        remote: CartStore,
        reprice: Callable[[str], None] | None = None,
    ) -> MigrationReport:
        if local.identity.is_authenticated or not remote.identity.is_authenticated:
            raise ValueError("Migracja tylko z koszyka goscia do koszyka uzytkownika")

        lock_key = LockService.migration_key(local.identity.session_token)
        lock_owner = remote.owner_ref

        if self.lock_service and not self.lock_service.acquire(lock_key, lock_owner, self.lock_ttl):
            logger.info(f"Migracja {local.owner_ref} juz trwa, pomijam")
            return MigrationReport(ran=False)

        try:
            return self._migrate(local, remote, reprice)
        finally:
            if self.lock_service:
                self.lock_service.release(lock_key, lock_owner)

    def _migrate(self, local: CartStore, remote: CartStore, reprice) -> MigrationReport:
        report = MigrationReport()
        lines = local.list()
        migrated_products = set()

        logger.info(f"Migracja {len(lines)} linii z {local.owner_ref} do {remote.owner_ref}")

        for line in lines:
            try:
                if remote.has_imported(line.id):
                    #zapis u uzytkownika przeszedl, zabraklo tylko checkpointu
                    logger.info(f"Linia {line.id} juz przeniesiona do {remote.owner_ref}, koncze checkpoint")
                else:
                    existing = remote.find_line(line.product_id, line.size, line.color)

                    #add_line scala z istniejaca linia: suma ilosci + adnotacje cenowe
                    #source_id zapisany w tej samej transakcji co linia
                    remote.add_line(
                        line.product_id,
                        line.quantity,
                        size=line.size,
                        color=line.color,
                        annotations=line.annotations(),
                        source_id=line.id,
                    )

                    if existing:
                        report.merged += 1
                    else:
                        report.inserted += 1

                #checkpoint - ta linia juz jest u uzytkownika
                local.remove_line(line.id)
                migrated_products.add(line.product_id)
            except Exception as e:
                logger.warning(f"Nie udalo sie przeniesc linii {line.id} ({line.product_id}): {e}")
                report.skipped.append(line.id)
                continue

            self._transfer_reservation(line, local, remote)

        if report.skipped:
            logger.warning(
                f"Migracja {local.owner_ref}: pominieto {len(report.skipped)} linii, "
                f"zostaja w koszyku goscia do ponownej proby"
            )
        else:
            local.destroy()

        #progi hurtowe liczone od nowa na polaczonym koszyku
        if reprice:
            for product_id in sorted(migrated_products):
                try:
                    reprice(product_id)
                except Exception as e:
                    logger.warning(f"Przeliczenie cen produktu {product_id} po migracji nieudane: {e}")

        logger.info(
            f"Migracja {local.owner_ref} -> {remote.owner_ref}: "
            f"scalono {report.merged}, dodano {report.inserted}"
        )
        return report

    def _transfer_reservation(self, line, local: CartStore, remote: CartStore) -> None:
        #sztuki pakietu zarezerwowane przez goscia przechodza na uzytkownika
        units = line.bundle_count * (line.bundle_quantity or 1)
        if self.stock is None or units <= 0 or not line.variant_id:
            return

        try:
            self.stock.transfer(local.owner_ref, remote.owner_ref, line.variant_id, units)
        except Exception as e:
            logger.warning(f"Nie udalo sie przeniesc rezerwacji wariantu {line.variant_id}: {e}")
