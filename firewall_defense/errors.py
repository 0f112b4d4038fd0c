"""Error taxonomy shared by the services and the HTTP layer."""

from __future__ import annotations


class FirewallError(Exception):
    status = 500


class InvalidInput(FirewallError):
    status = 400


class InvalidInterval(InvalidInput):
    pass


class PlayerNotFound(FirewallError):
    status = 404

    def __init__(self, player_id: str):
        super().__init__(f"player not found: {player_id}")
        self.player_id = player_id


class StorageUnavailable(FirewallError):
    status = 503


class BroadcastFailure(FirewallError):
    pass
