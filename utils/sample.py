from __future__ import annotations

from typing import Dict, List

from utils.tokenize import count_tokens

SAMPLE_FILENAME = "Sample (built-in)"

# Starter set seeded into the first-run language.
SAMPLE_GREEK: List[Dict[str, str]] = [
    {"en": "Hello.", "el": "Γεια σου.", "translit": "Yia sou.", "gloss": "hello"},
    {"en": "How are you?", "el": "Τι κάνεις;", "translit": "Ti káneis?", "gloss": "what do-you-do"},
    {
        "en": "I'm fine, thank you.",
        "el": "Είμαι καλά, ευχαριστώ.",
        "translit": "Eímai kalá, efcharistó.",
        "gloss": "I-am well, I-thank",
    },
    {"en": "Where are you from?", "el": "Από πού είσαι;", "translit": "Apó poú eísai?", "gloss": "from where are-you"},
    {"en": "I don't understand.", "el": "Δεν καταλαβαίνω.", "translit": "Den katalavaíno.", "gloss": "not I-understand"},
    {
        "en": "Could you say that again?",
        "el": "Μπορείς να το πεις ξανά;",
        "translit": "Boreís na to peis xaná?",
        "gloss": "can-you it say again",
    },
    {
        "en": "I would like a coffee, please.",
        "el": "Θα ήθελα έναν καφέ, παρακαλώ.",
        "translit": "Tha íthela énan kafé, parakaló.",
        "gloss": "would I-like a coffee please",
    },
    {"en": "How much is this?", "el": "Πόσο κάνει αυτό;", "translit": "Póso kánei aftó?", "gloss": "how-much does this-cost"},
    {
        "en": "Where is the bathroom?",
        "el": "Πού είναι η τουαλέτα;",
        "translit": "Poú eínai i toualéta?",
        "gloss": "where is the bathroom",
    },
    {"en": "I need help.", "el": "Χρειάζομαι βοήθεια.", "translit": "Chreiázomai voítheia.", "gloss": "I-need help"},
    {
        "en": "Today I'm reading sentences like a book.",
        "el": "Σήμερα διαβάζω προτάσεις σαν βιβλίο.",
        "translit": "Símera diavázo protáseis san vivlío.",
        "gloss": "today I-read sentences like book",
    },
    {
        "en": "Tomorrow I'll review them with spaced repetition.",
        "el": "Αύριο θα τις επαναλάβω με επανάληψη σε διαστήματα.",
        "translit": "Ávrio tha tis epanalávo me epanálipsi se diastímata.",
        "gloss": "tomorrow I-will review them with repetition in intervals",
    },
]


def sample_sentence_rows(
    language_id: str,
    deck_id: str,
    import_id: str,
    cjk_mode: bool,
    make_id,
) -> List[Dict]:
    return [
        {
            "id": make_id("s"),
            "language_id": language_id,
            "deck_id": deck_id,
            "position": index,
            "import_id": import_id,
            "source_text": item["en"],
            "target_text": item["el"],
            "transliteration_text": item.get("translit"),
            "gloss_text": item.get("gloss"),
            "token_count": count_tokens(item["el"], cjk_mode),
        }
        for index, item in enumerate(SAMPLE_GREEK)
    ]
