"""Process-wide telemetry context.

Only the shared property bag lives here.  Formatting and sending events is
the host's business.
"""

from __future__ import annotations

import platform
import uuid

from fabric_core import __version__


class TelemetryContext:
    """Mutable default properties attached to every telemetry event.

    Readers must call ``default_properties()`` each time they need the
    values: tenant and environment change over the life of the process.
    """

    def __init__(self, *, session_id: str | None = None, machine_id: str | None = None) -> None:
        self._props: dict[str, str] = {
            "common.sessionid": session_id or str(uuid.uuid4()),
            "common.machineid": machine_id or "",
            "common.coreversion": __version__,
            "common.platform": platform.system().lower(),
        }

    def set(self, key: str, value: str | None) -> None:
        if value is None:
            self._props.pop(key, None)
        else:
            self._props[key] = value

    def set_environment(self, environment: str) -> None:
        self.set("common.fabricenvironment", environment)

    def set_tenant(self, tenant_id: str | None) -> None:
        self.set("common.tenantid", tenant_id)

    def default_properties(self) -> dict[str, str]:
        return dict(self._props)
