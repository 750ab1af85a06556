"""Admin snapshot of identities and live sessions."""

from .identity_ledger import IdentityLedger
from .relay_models import AdminSnapshot, IdentityView, SessionView
from .session_registry import SessionRegistry


class AdminViewBuilder:
    def __init__(self, ledger: IdentityLedger, registry: SessionRegistry):
        self._ledger = ledger
        self._registry = registry

    async def build_snapshot(self) -> AdminSnapshot:
        """Read identities (newest trial first) and live sessions.

        Raises:
            AppError: E_STORAGE_ERROR when identities cannot be read.
        """
        records = await self._ledger.list_identities()
        sessions = self._registry.snapshot()
        return AdminSnapshot(
            identities=[
                IdentityView(identity=r.identity, trial_start=r.trial_start, blocked=r.blocked)
                for r in records
            ],
            sessions=[SessionView.from_session(s) for s in sessions],
        )
