import io
import json

from fastapi.testclient import TestClient

from main import app

TSV = "english\ttarget\nGood morning\tΚαλημέρα\nThank you\tΕυχαριστώ\nYes\tΝαι\n"


def _upload(client, language_id, deck_id, text=TSV, filename="phrases.tsv", **form):
    return client.post(
        "/imports/",
        data={"language_id": language_id, "deck_id": deck_id, **form},
        files={"file": (filename, io.BytesIO(text.encode("utf-8")), "text/tab-separated-values")},
    )


def test_language_and_deck_crud(conn):
    client = TestClient(app)
    response = client.post("/languages/", json={"name": "Greek", "language_tag": "el-GR"})
    assert response.status_code == 201
    language = response.json()
    assert language["token_mode"] == "target"

    decks = client.get(f"/languages/{language['id']}/decks").json()
    assert [deck["name"] for deck in decks] == ["Main"]

    travel = client.post("/decks/", json={"name": "Travel", "language_id": language["id"]}).json()
    renamed = client.post(f"/decks/{travel['id']}/rename", data={"name": "Trips"})
    assert renamed.json()["name"] == "Trips"

    assert client.delete(f"/decks/{travel['id']}").status_code == 200
    last = client.delete(f"/decks/{decks[0]['id']}")
    assert last.status_code == 400

    patched = client.patch(f"/languages/{language['id']}", json={"theme": "dark", "cjk_mode": True})
    assert patched.json()["theme"] == "dark"
    assert patched.json()["cjk_mode"] is True

    assert client.get("/languages/missing").status_code == 404


def test_import_and_practice_flow(conn, language, deck):
    client = TestClient(app)
    response = _upload(client, language["id"], deck["id"])
    assert response.status_code == 200
    result = response.json()
    assert result["imported"] == 3

    current = client.get(f"/practice/{language['id']}/{deck['id']}/current").json()
    assert current["kind"] == "linear"
    assert current["sentence"]["target_text"] == "Καλημέρα"

    moved = client.post(f"/practice/{language['id']}/{deck['id']}/advance", params={"delta": 1}).json()
    assert moved["moved"] is True
    assert moved["progress"]["lifetime_reps"] == 1

    client.post(f"/practice/{language['id']}/{deck['id']}/mode", data={"mode": "srs"})
    card = client.get(f"/practice/{language['id']}/{deck['id']}/current").json()
    assert card["kind"] == "srs"
    assert card["is_new"] is True

    rated = client.post(
        f"/practice/{language['id']}/{deck['id']}/rate",
        data={"sentence_id": card["sentence"]["id"], "grade": "good"},
    )
    assert rated.status_code == 200
    assert rated.json()["srs"]["interval_days"] == 1

    unknown = client.post(
        f"/practice/{language['id']}/{deck['id']}/rate",
        data={"sentence_id": "missing", "grade": "good"},
    )
    assert unknown.status_code == 404

    history = client.get(f"/imports/{language['id']}/{deck['id']}").json()
    assert [batch["row_count"] for batch in history] == [3]
    undo = client.delete(f"/imports/{language['id']}/{deck['id']}/{result['import_id']}")
    assert undo.json()["deleted"] == 3
    empty = client.get(f"/practice/{language['id']}/{deck['id']}/current").json()
    assert empty["kind"] == "none"


def test_import_reports_missing_columns(conn, language, deck):
    client = TestClient(app)
    response = _upload(client, language["id"], deck["id"], text="foo\tbar\n1\t2\n")
    assert response.status_code == 400
    assert "Missing required columns" in response.json()["detail"]


def test_csv_delimiter_inferred_from_extension(conn, language, deck):
    client = TestClient(app)
    response = _upload(client, language["id"], deck["id"], text="English,Target\nHi,Γεια\n", filename="hi.csv")
    assert response.status_code == 200
    assert response.json()["imported"] == 1


def test_backup_export_and_import(conn, language, deck):
    client = TestClient(app)
    _upload(client, language["id"], deck["id"])

    exported = client.get("/admin/export")
    assert exported.status_code == 200
    snapshot = exported.json()
    assert len(snapshot["sentences"]) == 3

    archive = client.get("/admin/backup")
    assert archive.headers["content-type"] == "application/zip"

    client.post("/languages/", json={"name": "Scratch"})
    restored = client.post(
        "/admin/restore",
        files={"file": ("backup.zip", io.BytesIO(archive.content), "application/zip")},
    )
    assert restored.status_code == 200
    assert [row["id"] for row in client.get("/languages/").json()] == [language["id"]]

    imported = client.post(
        "/admin/import",
        files={"file": ("backup.json", io.BytesIO(json.dumps(snapshot).encode("utf-8")), "application/json")},
    )
    assert imported.json()["restored"]["sentences"] == 3

    bad = client.post("/admin/restore", files={"file": ("backup.zip", io.BytesIO(b"nope"), "application/zip")})
    assert bad.status_code == 400


def test_session_selection(conn, language, deck):
    client = TestClient(app)
    response = client.post("/session/", data={"language_id": language["id"], "deck_id": deck["id"]})
    assert response.status_code == 200
    session = client.get("/session/").json()
    assert session["language"]["id"] == language["id"]
    assert session["deck"]["id"] == deck["id"]
    assert session["speech"]["language_tag"] == "el-GR"

    assert client.post("/session/", data={"language_id": "missing"}).status_code == 404
