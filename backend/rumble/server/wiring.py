"""Assemble the battle core from settings and platform adapters."""

from collections.abc import Sequence

from rumble.logic.pricing import FallbackPriceOracle, PriceOracle, PriceSource
from rumble.messaging.protocol import AdminDirectory, Messenger, TokenLedger
from rumble.server.settings import RumbleSettings
from rumble.session.controller import BattleController
from rumble.session.runner import BattleRunner
from rumble.store.repository import BattleStore
from rumble.store.storage import DocumentStorage, FileDocumentStorage


def build_controller(  # noqa: PLR0913
    settings: RumbleSettings,
    messenger: Messenger,
    admins: AdminDirectory,
    oracle: PriceOracle,
    ledger: TokenLedger,
    storage: DocumentStorage | None = None,
) -> BattleController:
    """Wire store, runner and controller. Storage defaults to the JSON file at settings.data_path."""
    store = BattleStore(storage or FileDocumentStorage(settings.data_path), history_limit=settings.history_limit)
    runner = BattleRunner(store, messenger, ledger, tick_interval=settings.tick_interval_seconds)
    return BattleController(
        store,
        messenger,
        admins,
        oracle,
        ledger,
        runner,
        bot_address=settings.bot_address,
        public_join_timeout_seconds=settings.public_join_timeout_seconds,
    )


def build_price_oracle(settings: RumbleSettings, sources: Sequence[PriceSource]) -> FallbackPriceOracle:
    return FallbackPriceOracle(
        sources,
        target_usd=settings.tip_target_usd,
        tolerance_percent=settings.tip_tolerance_percent,
        decimals=settings.token_decimals,
    )
