"""API key data model.

One credential per file, ``<credentials_dir>/<api_key>.json``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class ApiEntry(BaseModel):
    """Issued API key bound to a Slack identity.

    The only mutation after issuance is flipping ``revoked`` to True
    (plus the ``last_used`` bookkeeping stamp).
    """

    model_config = ConfigDict(extra="ignore")

    api_key: str
    issue_date: str = ""
    last_used: str = ""
    slack_id: str = ""
    revoked: bool = False

    def is_revoked(self) -> bool:
        return self.revoked
