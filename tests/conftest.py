import pytest

from firewall_defense.app import create_app
from firewall_defense.errors import BroadcastFailure, StorageUnavailable
from firewall_defense.game.config import ServerConfig
from firewall_defense.game.players import PlayerDirectory
from firewall_defense.leaderboard.flush import FlushScheduler
from firewall_defense.leaderboard.ledger import ScoreLedger
from firewall_defense.leaderboard.notifier import RankChangeNotifier
from firewall_defense.leaderboard.service import LeaderboardService
from firewall_defense.net.auth import issue_token
from firewall_defense.net.broadcast import MemoryBroadcaster
from firewall_defense.storage import keys
from firewall_defense.storage.memory import MemoryStore

START_MS = 1_700_000_000_000
CHANNEL = "global_updates"
ADMIN_KEY = "test-admin-key"


class FakeClock:
    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FailingStore(MemoryStore):
    """MemoryStore whose listed operations raise StorageUnavailable."""

    def __init__(self):
        super().__init__()
        self.failing: set[str] = set()
        self.fail_reset_for: set[str] = set()

    def _check(self, op: str) -> None:
        if op in self.failing:
            raise StorageUnavailable(f"{op} failed: connection refused")

    async def apply_score_delta(self, player_id, delta):
        self._check("apply_score_delta")
        return await super().apply_score_delta(player_id, delta)

    async def flush_player(self, player_id):
        if player_id in self.fail_reset_for:
            raise StorageUnavailable(f"flush_player failed for {player_id}")
        return await super().flush_player(player_id)

    async def rank_range(self, start=0, stop=-1):
        self._check("rank_range")
        return await super().rank_range(start, stop)

    async def rank_remove(self, player_id):
        self._check("rank_remove")
        await super().rank_remove(player_id)

    async def get_value(self, key):
        self._check("get_value")
        return await super().get_value(key)


class BrokenBroadcaster(MemoryBroadcaster):
    async def publish(self, topic, payload):
        raise BroadcastFailure("publish failed: connection reset")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return FailingStore()


@pytest.fixture
def broadcaster():
    return MemoryBroadcaster()


@pytest.fixture
def players(store, clock):
    return PlayerDirectory(store, clock=clock)


@pytest.fixture
def ledger(store):
    return ScoreLedger(store)


@pytest.fixture
def scheduler(store):
    return FlushScheduler(store, default_interval_minutes=60)


@pytest.fixture
def service(store, broadcaster, players, ledger, scheduler, clock):
    notifier = RankChangeNotifier(players, broadcaster, CHANNEL)
    return LeaderboardService(ledger, scheduler, notifier, players, top_n=3, clock=clock)


@pytest.fixture
def enroll(players):
    async def _enroll(*ids):
        for pid in ids:
            await players.enroll(pid)
        return ids

    return _enroll


@pytest.fixture
def fresh_epoch(store, clock):
    """Mark the leaderboard as flushed just now so no lazy flush fires."""

    async def _mark():
        await store.set_value(keys.LAST_FLUSH, clock.now)

    return _mark


@pytest.fixture
def config():
    cfg = ServerConfig(store="memory", jwt_secret="test-secret", admin_api_key=ADMIN_KEY)
    return cfg


@pytest.fixture
async def client(aiohttp_client, config, store, broadcaster, clock):
    app = create_app(config, store=store, broadcaster=broadcaster, clock=clock)
    return await aiohttp_client(app)


@pytest.fixture
def token_for(config):
    def _token(player_id):
        return {"Authorization": f"Bearer {issue_token(config, player_id)}"}

    return _token


@pytest.fixture
def admin_headers():
    return {"X-Admin-Api-Key": ADMIN_KEY}
