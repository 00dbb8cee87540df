"""
Account resolver: semantic role -> concrete account id.

Posting code never hardcodes account ids. It asks for a role such
as "accounts_receivable" and the resolver answers, in order:
1. The tenant's own AccountMapping row for that role
2. The configured default account code for that role, looked up
   among the tenant's active accounts
3. None

Resolution only reads. It never creates accounts or mappings.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_engine.config import get_settings
from ledger_engine.exceptions import MissingAccountMappingError
from ledger_engine.models.account import Account, AccountMapping


class AccountResolver:

    def __init__(self, db: Session, default_mappings: dict[str, str] | None = None):
        self.db = db
        if default_mappings is None:
            default_mappings = get_settings().ACCOUNT_MAPPINGS
        self.default_mappings = default_mappings

    def resolve(self, tenant_id: str, semantic_key: str) -> int | None:
        """Return the account id for a role, or None if unmapped."""
        override = self.db.execute(
            select(AccountMapping.account_id).where(
                AccountMapping.tenant_id == tenant_id,
                AccountMapping.mapping_key == semantic_key,
            )
        ).scalar_one_or_none()
        if override is not None:
            return override

        code = self.default_mappings.get(semantic_key)
        if code is None:
            return None

        return self.db.execute(
            select(Account.id).where(
                Account.tenant_id == tenant_id,
                Account.code == code,
                Account.is_active.is_(True),
            )
        ).scalar_one_or_none()

    def require(self, tenant_id: str, *keys: str) -> dict[str, int]:
        """
        Resolve every role or fail naming all of the missing ones.

        Called before any write so a posting with a gap in its
        mappings leaves nothing behind.
        """
        resolved = {}
        missing = []
        for key in dict.fromkeys(keys):
            account_id = self.resolve(tenant_id, key)
            if account_id is None:
                missing.append(key)
            else:
                resolved[key] = account_id
        if missing:
            raise MissingAccountMappingError(missing)
        return resolved
