"""Small helper to build the runtime objects the CLI needs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional
import getpass

from vaultdrop.core.config import Settings, build_backend, build_store
from vaultdrop.core.lifecycle import ObjectLifecycle
from vaultdrop.core.vault import Vault
from vaultdrop.network.retry import RetryPolicy
from vaultdrop.network.transfer import TransferClient


@dataclass
class AppContext:
    """Container for runtime objects the commands use."""

    settings: Settings
    lifecycle: ObjectLifecycle
    transfer: TransferClient
    vault: Vault
    owner_id: str


def build_context(
    owner_id: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    settings: Optional[Settings] = None,
) -> AppContext:
    """
    Wire store, backend, lifecycle and transfer client from settings.

    Settings come from the environment (see :mod:`vaultdrop.core.config`)
    unless passed in. The owner defaults to the OS user name, which stands in
    for the auth provider's caller-stable id on a single-user machine.
    """
    settings = settings or Settings.from_env(environ)
    store = build_store(settings)
    backend = build_backend(settings)

    lifecycle = ObjectLifecycle(
        store,
        backend,
        upload_ttl=settings.upload_ttl,
        download_ttl=settings.download_ttl,
    )
    transfer = TransferClient(
        policy=RetryPolicy(max_retries=settings.max_retries, base_delay=settings.retry_base_delay),
    )
    return AppContext(
        settings=settings,
        lifecycle=lifecycle,
        transfer=transfer,
        vault=Vault(lifecycle, transfer),
        owner_id=owner_id or getpass.getuser(),
    )
