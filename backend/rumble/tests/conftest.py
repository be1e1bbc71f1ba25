import pytest

from rumble.session.controller import BattleController
from rumble.session.runner import BattleRunner
from rumble.store.repository import BattleStore
from rumble.store.storage import InMemoryDocumentStorage
from rumble.tests.helpers import ADMIN, BOT_ADDRESS, SPACE
from rumble.tests.mocks import MockAdminDirectory, MockLedger, MockMessenger, MockPriceOracle


@pytest.fixture
def storage():
    return InMemoryDocumentStorage()


@pytest.fixture
def store(storage):
    return BattleStore(storage)


@pytest.fixture
def messenger():
    return MockMessenger()


@pytest.fixture
def ledger():
    return MockLedger({ADMIN: 10**24})


@pytest.fixture
def oracle():
    return MockPriceOracle()


@pytest.fixture
def admins():
    return MockAdminDirectory([(ADMIN, SPACE)])


@pytest.fixture
async def runner(store, messenger, ledger):
    runner = BattleRunner(store, messenger, ledger, tick_interval=0)
    yield runner
    await runner.shutdown()


@pytest.fixture
async def controller(store, messenger, admins, oracle, ledger, runner):
    controller = BattleController(
        store,
        messenger,
        admins,
        oracle,
        ledger,
        runner,
        bot_address=BOT_ADDRESS,
        public_join_timeout_seconds=600,
    )
    yield controller
    await controller.shutdown()
