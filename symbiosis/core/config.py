"""
Configuration manager for credentials and endpoints.

Stores encrypted configuration in ~/.symbiosis/config/. Environment variables
always win over stored values.
"""

import getpass
import json
import os
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

API_KEY = "OPENROUTER_API_KEY"
STORE_URL = "SYMBIOSIS_STORE_URL"
MODEL = "SYMBIOSIS_MODEL"

KNOWN_KEYS = {
    API_KEY: "OpenRouter inference credential",
    STORE_URL: "Memory store endpoint (POST URL)",
    MODEL: "Model override (LiteLLM identifier)",
}


class ConfigManager:
    """
    Encrypted key/value store for symbiosis settings.

    Directory structure:
        ~/.symbiosis/config/.key     # Encryption key
        ~/.symbiosis/config/keys.enc # Encrypted values
    """

    def __init__(self, base_dir: Path | None = None):
        if base_dir is None:
            base_dir = Path.home() / ".symbiosis" / "config"

        self.base_dir = base_dir
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._fernet = self._get_fernet()
        self._cache: dict[str, str] | None = None

    def _get_fernet(self) -> Fernet:
        key_file = self.base_dir / ".key"

        if key_file.exists():
            key = key_file.read_bytes()
        else:
            key = Fernet.generate_key()
            key_file.write_bytes(key)
            try:
                key_file.chmod(0o600)
            except OSError:
                pass

        return Fernet(key)

    @property
    def keys_path(self) -> Path:
        return self.base_dir / "keys.enc"

    def _load(self) -> dict[str, str]:
        if self._cache is not None:
            return self._cache

        if not self.keys_path.exists():
            self._cache = {}
            return self._cache

        try:
            self._cache = json.loads(self._fernet.decrypt(self.keys_path.read_bytes()))
        except (InvalidToken, json.JSONDecodeError):
            # Unreadable file (rotated key, corruption): start over
            self._cache = {}
        return self._cache

    def _save(self, values: dict[str, str]) -> None:
        self.keys_path.write_bytes(self._fernet.encrypt(json.dumps(values).encode()))
        try:
            self.keys_path.chmod(0o600)
        except OSError:
            pass
        self._cache = values

    def get(self, name: str) -> str | None:
        """Environment first, then stored config."""
        if name in os.environ:
            return os.environ[name]
        return self._load().get(name)

    def set(self, name: str, value: str) -> None:
        values = dict(self._load())
        values[name] = value
        self._save(values)

    def delete(self, name: str) -> bool:
        """
        Delete a stored value.

        Returns:
            True if deleted, False if not found
        """
        values = dict(self._load())
        if name not in values:
            return False
        del values[name]
        self._save(values)
        return True

    def list_keys(self) -> list[str]:
        return list(self._load().keys())

    def load_into_environment(self) -> int:
        """
        Export stored values that the environment does not already define.

        Returns:
            Number of values loaded
        """
        loaded = 0
        for name, value in self._load().items():
            if name not in os.environ:
                os.environ[name] = value
                loaded += 1
        return loaded

    def set_interactive(self, name: str) -> bool:
        """Prompt for a value without echoing it. Returns True if saved."""
        console.print()
        console.print(
            Panel(
                f"[bold]{name}[/bold]\n{KNOWN_KEYS.get(name, 'Custom value')}",
                title="Set configuration value",
                border_style="blue",
            )
        )

        value = getpass.getpass("Enter value (or press Enter to cancel): ")
        if not value:
            console.print("[dim]Cancelled[/dim]")
            return False

        self.set(name, value)
        console.print(f"[green]✓[/green] Saved {name}")
        return True

    def show_status(self) -> None:
        values = self._load()

        if not values:
            console.print("[dim]Nothing configured[/dim]")
            console.print()
            console.print(f"Run [cyan]symbiosis config set {API_KEY}[/cyan] to get started")
            return

        table = Table(title="Symbiosis configuration")
        table.add_column("Key", style="cyan")
        table.add_column("Purpose")
        table.add_column("Status")

        for name in sorted(values):
            if name in os.environ and os.environ[name] != values[name]:
                status = "[yellow]env override[/yellow]"
            else:
                status = "[green]stored[/green]"
            table.add_row(name, KNOWN_KEYS.get(name, "Custom"), status)

        console.print(table)
        console.print()
        console.print(f"[dim]Config location: {self.base_dir}[/dim]")


_config_manager: ConfigManager | None = None


def get_config_manager() -> ConfigManager:
    """Get the global config manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def load_config() -> int:
    """Load stored config into the environment. Returns the number loaded."""
    return get_config_manager().load_into_environment()
