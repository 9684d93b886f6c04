# SQL schema for Sentence Paths database

SCHEMA_VERSION = 4

SCHEMA_SQL = """
-- Languages (formerly "datasets")
CREATE TABLE IF NOT EXISTS languages (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    language_tag TEXT NOT NULL DEFAULT 'el-GR',
    rtl_mode TEXT NOT NULL DEFAULT 'auto' CHECK(rtl_mode IN ('auto', 'rtl', 'ltr')),
    token_mode TEXT NOT NULL DEFAULT 'target' CHECK(token_mode IN ('target', 'source', 'both')),
    cjk_mode INTEGER NOT NULL DEFAULT 0,
    goal_tokens INTEGER NOT NULL DEFAULT 5000000,
    theme TEXT NOT NULL DEFAULT 'paper' CHECK(theme IN ('paper', 'desk', 'dark')),
    tts_rate REAL NOT NULL DEFAULT 1.0,
    tts_pitch REAL NOT NULL DEFAULT 1.0,
    preferred_voice_uri TEXT,
    created_at INTEGER NOT NULL DEFAULT 0
);

-- Decks ("paths")
CREATE TABLE IF NOT EXISTS decks (
    id TEXT PRIMARY KEY,
    language_id TEXT NOT NULL,
    name TEXT NOT NULL,
    created_at INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (language_id) REFERENCES languages (id) ON DELETE CASCADE
);

-- Import batches (bulk-undo records)
CREATE TABLE IF NOT EXISTS import_batches (
    id TEXT PRIMARY KEY,
    language_id TEXT NOT NULL,
    deck_id TEXT NOT NULL,
    filename TEXT NOT NULL DEFAULT '',
    created_at INTEGER NOT NULL DEFAULT 0,
    mode TEXT NOT NULL DEFAULT 'append' CHECK(mode IN ('append', 'replace')),
    start_order INTEGER NOT NULL DEFAULT 0,
    end_order INTEGER NOT NULL DEFAULT 0,
    row_count INTEGER NOT NULL DEFAULT 0
);

-- Sentences; deck_id/position/import_id are NULL only on rows that predate decks
CREATE TABLE IF NOT EXISTS sentences (
    id TEXT PRIMARY KEY,
    language_id TEXT NOT NULL,
    deck_id TEXT,
    position INTEGER,
    import_id TEXT,
    source_text TEXT NOT NULL DEFAULT '',
    target_text TEXT NOT NULL DEFAULT '',
    transliteration_text TEXT,
    gloss_text TEXT,
    token_count INTEGER,
    legacy_json TEXT
);

-- Legacy dataset-wide progress, read only by migrations and restore
CREATE TABLE IF NOT EXISTS legacy_progress (
    language_id TEXT PRIMARY KEY,
    lifetime_reps INTEGER NOT NULL DEFAULT 0,
    lifetime_tokens INTEGER NOT NULL DEFAULT 0,
    current_index INTEGER NOT NULL DEFAULT 0,
    updated_at INTEGER NOT NULL DEFAULT 0
);

-- Per-path progress
CREATE TABLE IF NOT EXISTS path_progress (
    language_id TEXT NOT NULL,
    deck_id TEXT NOT NULL,
    mode TEXT NOT NULL DEFAULT 'linear' CHECK(mode IN ('linear', 'srs')),
    linear_order INTEGER NOT NULL DEFAULT 0,
    srs_new_order INTEGER NOT NULL DEFAULT 0,
    lifetime_reps INTEGER NOT NULL DEFAULT 0,
    lifetime_tokens INTEGER NOT NULL DEFAULT 0,
    updated_at INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (language_id, deck_id)
);

-- Per-path SRS state
CREATE TABLE IF NOT EXISTS srs_state (
    language_id TEXT NOT NULL,
    deck_id TEXT NOT NULL,
    sentence_id TEXT NOT NULL,
    due_at INTEGER NOT NULL DEFAULT 0,
    reps INTEGER NOT NULL DEFAULT 0,
    lapses INTEGER NOT NULL DEFAULT 0,
    interval_days INTEGER NOT NULL DEFAULT 0,
    ease REAL NOT NULL DEFAULT 2.5,
    updated_at INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (language_id, deck_id, sentence_id)
);

-- Language-wide word tracking
CREATE TABLE IF NOT EXISTS seen_words (
    language_id TEXT NOT NULL,
    token TEXT NOT NULL,
    first_seen_at INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (language_id, token)
);

CREATE TABLE IF NOT EXISTS language_stats (
    language_id TEXT PRIMARY KEY,
    unique_words_seen INTEGER NOT NULL DEFAULT 0,
    updated_at INTEGER NOT NULL DEFAULT 0
);
"""

# Columns added after the first release, keyed by table. Used to patch legacy
# installs with ALTER TABLE before the indexes are created.
ADDED_COLUMNS = {
    "languages": {
        "rtl_mode": "TEXT NOT NULL DEFAULT 'auto'",
        "token_mode": "TEXT NOT NULL DEFAULT 'target'",
        "cjk_mode": "INTEGER NOT NULL DEFAULT 0",
        "goal_tokens": "INTEGER NOT NULL DEFAULT 5000000",
        "theme": "TEXT NOT NULL DEFAULT 'paper'",
        "tts_rate": "REAL NOT NULL DEFAULT 1.0",
        "tts_pitch": "REAL NOT NULL DEFAULT 1.0",
        "preferred_voice_uri": "TEXT",
        "created_at": "INTEGER NOT NULL DEFAULT 0",
    },
    "sentences": {
        "deck_id": "TEXT",
        "position": "INTEGER",
        "import_id": "TEXT",
        "source_text": "TEXT NOT NULL DEFAULT ''",
        "target_text": "TEXT NOT NULL DEFAULT ''",
        "transliteration_text": "TEXT",
        "gloss_text": "TEXT",
        "token_count": "INTEGER",
        "legacy_json": "TEXT",
    },
}

# Indexes for the composite lookups used by the scheduler and importers
INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_decks_language ON decks (language_id, created_at);
CREATE INDEX IF NOT EXISTS idx_imports_path ON import_batches (language_id, deck_id, created_at);
CREATE INDEX IF NOT EXISTS idx_sentences_language ON sentences (language_id);
CREATE INDEX IF NOT EXISTS idx_sentences_path_position ON sentences (language_id, deck_id, position);
CREATE INDEX IF NOT EXISTS idx_sentences_path_import ON sentences (language_id, deck_id, import_id);
CREATE INDEX IF NOT EXISTS idx_path_progress_deck ON path_progress (deck_id);
CREATE INDEX IF NOT EXISTS idx_srs_path_due ON srs_state (language_id, deck_id, due_at);
CREATE INDEX IF NOT EXISTS idx_seen_words_language ON seen_words (language_id, first_seen_at);
"""

# Column order per table, used by backup export/restore and bulk writes
TABLE_COLUMNS = {
    "languages": (
        "id", "name", "language_tag", "rtl_mode", "token_mode", "cjk_mode",
        "goal_tokens", "theme", "tts_rate", "tts_pitch", "preferred_voice_uri",
        "created_at",
    ),
    "decks": ("id", "language_id", "name", "created_at"),
    "import_batches": (
        "id", "language_id", "deck_id", "filename", "created_at", "mode",
        "start_order", "end_order", "row_count",
    ),
    "sentences": (
        "id", "language_id", "deck_id", "position", "import_id", "source_text",
        "target_text", "transliteration_text", "gloss_text", "token_count",
        "legacy_json",
    ),
    "legacy_progress": (
        "language_id", "lifetime_reps", "lifetime_tokens", "current_index", "updated_at",
    ),
    "path_progress": (
        "language_id", "deck_id", "mode", "linear_order", "srs_new_order",
        "lifetime_reps", "lifetime_tokens", "updated_at",
    ),
    "srs_state": (
        "language_id", "deck_id", "sentence_id", "due_at", "reps", "lapses",
        "interval_days", "ease", "updated_at",
    ),
    "seen_words": ("language_id", "token", "first_seen_at"),
    "language_stats": ("language_id", "unique_words_seen", "updated_at"),
}
