import tomllib
import shutil
import re
from pathlib import Path
from typing import Any, Dict, Optional
from dotenv import load_dotenv
import os

CONFIG_DIR = Path.home() / ".sentencepaths"
CONFIG_PATH = CONFIG_DIR / "config.toml"
PROJECT_CONFIG_EXAMPLE = Path(__file__).parent / "config.toml"

def load_config() -> Dict[str, Any]:
    """Load config from ~/.sentencepaths/config.toml, copy example if missing, load .env overrides."""
    load_dotenv()  # Load .env for overrides (e.g., IMPORT_BATCH_SIZE env var)
    if not CONFIG_PATH.exists():
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        shutil.copy(PROJECT_CONFIG_EXAMPLE, CONFIG_PATH)
    with open(CONFIG_PATH, "rb") as f:
        config = tomllib.load(f)

    import_cfg = config.get("import", {})
    config["import"] = {
        "batch_size": int(os.getenv("IMPORT_BATCH_SIZE", import_cfg.get("batch_size", 1500))),
        "default_delimiter": import_cfg.get("default_delimiter", "\t"),
    }
    srs_cfg = config.get("srs", {})
    config["srs"] = {
        "again_delay_minutes": int(os.getenv(
            "SRS_AGAIN_DELAY_MINUTES", srs_cfg.get("again_delay_minutes", 10)
        )),
        "new_card_probe_limit": int(os.getenv(
            "SRS_NEW_CARD_PROBE_LIMIT", srs_cfg.get("new_card_probe_limit", 50)
        )),
        "starting_ease": float(srs_cfg.get("starting_ease", 2.5)),
        "min_ease": float(srs_cfg.get("min_ease", 1.3)),
        "max_ease": float(srs_cfg.get("max_ease", 2.8)),
    }
    library_cfg = config.get("library", {})
    config["library"] = {
        "default_language_tag": library_cfg.get("default_language_tag", "el-GR"),
        "default_goal_tokens": int(library_cfg.get("default_goal_tokens", 5_000_000)),
        "seed_sample": str(library_cfg.get("seed_sample", True)).lower() == "true",
    }
    backup_cfg = config.get("backup", {})
    config["backup"] = {
        "keep": int(os.getenv("BACKUP_KEEP", backup_cfg.get("keep", 7))),
        "daily": str(backup_cfg.get("daily", True)).lower() == "true",
    }
    logging_cfg = config.get("logging", {})
    config["logging"] = {
        "level": os.getenv("LOG_LEVEL", logging_cfg.get("level", "INFO")).upper(),
    }
    session_cfg = config.get("session", {})
    config["session"] = {
        "language_id": session_cfg.get("language_id") or None,
        "deck_id": session_cfg.get("deck_id") or None,
    }
    return config

def get_config_value(section: str, key: str, default: Optional[Any] = None) -> Any:
    """Get nested config value, e.g., get_config_value('srs', 'min_ease')."""
    config = load_config()
    value = config.get(section, {}).get(key, default)
    return value


def _set_section_value(text: str, section_name: str, key: str, value: str) -> str:
    header = f"[{section_name}]"
    line = f'{key} = "{value}"'
    if header not in text:
        return text.rstrip() + f"\n\n{header}\n{line}\n"

    def update_section(match: re.Match) -> str:
        section = match.group(1)
        rest = match.group(2)
        if re.search(rf"^{key}\s*=", section, flags=re.MULTILINE):
            section = re.sub(
                rf"^{key}\s*=.*$",
                line,
                section,
                flags=re.MULTILINE,
            )
        else:
            lines = section.rstrip().splitlines()
            insert_at = 1 if lines else 0
            lines.insert(insert_at, line)
            section = "\n".join(lines) + "\n"
        return section + rest

    pattern = rf"(?ms)(^\[{re.escape(section_name)}\].*?)(^\[|\Z)"
    return re.sub(pattern, update_section, text, count=1)


def set_session_selection(language_id: str, deck_id: Optional[str]) -> None:
    """Persist the selected language/deck into config.toml."""
    load_config()
    text = CONFIG_PATH.read_text(encoding="utf-8")
    text = _set_section_value(text, "session", "language_id", language_id)
    text = _set_section_value(text, "session", "deck_id", deck_id or "")
    CONFIG_PATH.write_text(text, encoding="utf-8")
