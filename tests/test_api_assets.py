"""HTTP tests for the asset endpoints."""

from media_lifecycle.services.reclamation_service import run_reclamation
from tests.helpers import make_png, run

ACTOR = {"X-Actor-ID": "editor-7"}


def _upload(client, content, origin_source="product", origin_context="product-form", headers=ACTOR):
    return client.post(
        "/v1/assets/upload",
        files={"file": ("photo.png", content, "image/png")},
        data={"origin_source": origin_source, "origin_context": origin_context},
        headers=headers,
    )


def test_full_lifecycle(client, test_db, store, clock):
    """Upload, dedupe, attach, protect, archive and purge one image."""
    content = make_png(color=(12, 34, 56))

    response = _upload(client, content)
    assert response.status_code == 201
    created = response.json()
    key = created["storage_key"]
    assert created["status"] == "temp"
    assert created["duplicate"] is False
    assert created["asset"]["uploaded_by"] == "editor-7"

    response = _upload(client, content, origin_source="cms", origin_context="page-editor")
    assert response.status_code == 200
    assert response.json()["duplicate"] is True
    assert response.json()["asset_id"] == created["asset_id"]

    response = client.post(
        "/v1/assets/promote",
        json={"storage_key": key, "entity_type": "product", "entity_id": "p1"},
    )
    assert response.status_code == 200
    assert response.json()["asset"]["status"] == "permanent"
    assert response.json()["asset"]["used_by"] == [{"entity_type": "product", "entity_id": "p1"}]

    response = client.delete(f"/v1/assets/{key}", headers=ACTOR)
    assert response.status_code == 409
    assert response.json()["detail"]["used_by"] == [{"entity_type": "product", "entity_id": "p1"}]

    response = client.post(
        "/v1/assets/detach",
        json={"storage_key": key, "entity_type": "product", "entity_id": "p1"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "permanent"

    response = client.delete(f"/v1/assets/{key}", headers=ACTOR)
    assert response.status_code == 403

    response = client.delete(f"/v1/assets/{key}?force=true", headers=ACTOR)
    assert response.status_code == 200
    assert response.json()["outcome"] == "archived"
    assert response.json()["purge_after"] is not None

    clock.advance(days=8)
    summary = run(run_reclamation(test_db, store, clock=clock))
    assert summary["purged"] == 1
    assert store.destroys == [key]

    response = client.get(f"/v1/assets/{key}")
    assert response.status_code == 404


def test_get_by_id_and_key(client):
    created = _upload(client, make_png(color=(1, 2, 3))).json()

    by_id = client.get(f"/v1/assets/{created['asset_id']}")
    by_key = client.get(f"/v1/assets/{created['storage_key']}")

    assert by_id.status_code == 200
    assert by_key.status_code == 200
    assert by_id.json()["id"] == by_key.json()["id"]


def test_delete_temp_asset(client, store):
    created = _upload(client, make_png(color=(4, 5, 6))).json()

    response = client.delete(f"/v1/assets/{created['storage_key']}", headers=ACTOR)

    assert response.status_code == 200
    assert response.json()["outcome"] == "deleted"
    assert not store.has_blob(created["storage_key"])


def test_list_with_filters(client):
    first = _upload(client, make_png(color=(7, 0, 0))).json()
    _upload(client, make_png(color=(8, 0, 0)), origin_source="cms", origin_context="page-editor")
    client.post("/v1/assets/promote", json={"storage_key": first["storage_key"]})

    response = client.get("/v1/assets/")
    assert response.status_code == 200
    assert response.json()["total"] == 2

    response = client.get("/v1/assets/", params={"status": "permanent"})
    assert [a["id"] for a in response.json()["items"]] == [first["asset_id"]]

    response = client.get("/v1/assets/", params={"origin": "cms"})
    assert response.json()["total"] == 1
    assert response.json()["items"][0]["origin_source"] == "cms"

    response = client.get("/v1/assets/", params={"size": 1})
    assert response.json()["pages"] == 2
    assert response.json()["has_more"] is True


def test_upload_rejects_non_image(client):
    response = _upload(client, b"definitely not a png")
    assert response.status_code == 400


def test_upload_rejects_empty_file(client):
    response = _upload(client, b"")
    assert response.status_code == 400


def test_upload_rejects_unknown_origin(client):
    response = _upload(client, make_png(), origin_source="warehouse")
    assert response.status_code == 422


def test_upload_remote_failure(client, store):
    store.fail_upload = True

    response = _upload(client, make_png(color=(9, 9, 0)))

    assert response.status_code == 502
    assert client.get("/v1/assets/").json()["total"] == 0


def test_actor_header_required(client):
    response = _upload(client, make_png(), headers={})
    assert response.status_code == 400

    response = client.delete("/v1/assets/1")
    assert response.status_code == 400


def test_promote_unknown_key(client):
    response = client.post("/v1/assets/promote", json={"storage_key": "assets/missing"})
    assert response.status_code == 404


def test_entity_sync_from_payload(client):
    old = _upload(client, make_png(color=(20, 0, 0))).json()
    new = _upload(client, make_png(color=(21, 0, 0))).json()

    response = client.post(
        "/v1/assets/entities/finalize",
        json={"entity_type": "product", "entity_id": "p1", "payload": {"images": [old["delivery_url"]]}},
    )
    assert response.json()["success"] == [old["storage_key"]]

    response = client.post(
        "/v1/assets/entities/sync",
        json={"entity_type": "product", "entity_id": "p1", "payload": {"images": [new["delivery_url"]]}},
    )
    assert response.status_code == 200
    assert response.json()["success"] == [new["storage_key"]]
    assert response.json()["detached"] == [old["storage_key"]]

    response = client.post("/v1/assets/entities/release", json={"entity_type": "product", "entity_id": "p1"})
    assert response.json()["detached"] == [new["storage_key"]]


def test_bulk_delete(client):
    temp = _upload(client, make_png(color=(30, 0, 0))).json()
    used = _upload(client, make_png(color=(31, 0, 0))).json()
    client.post(
        "/v1/assets/promote",
        json={"storage_key": used["storage_key"], "entity_type": "cms", "entity_id": "home"},
    )

    response = client.post(
        "/v1/assets/bulk-delete",
        json={"ids": [temp["storage_key"], used["storage_key"]]},
        headers=ACTOR,
    )

    assert response.status_code == 200
    body = response.json()
    assert (body["deleted"], body["archived"], body["failed"]) == (1, 0, 1)
    assert body["results"][1]["used_by"] == [{"entity_type": "cms", "entity_id": "home"}]


def test_reconcile_reports_nothing_for_fresh_store(client):
    _upload(client, make_png(color=(40, 0, 0)))

    response = client.post("/v1/assets/reconcile", json={})

    assert response.status_code == 200
    assert response.json()["untracked"] == []


def test_entity_sync_requires_a_key_source(client):
    created = _upload(client, make_png(color=(22, 0, 0))).json()
    client.post(
        "/v1/assets/promote",
        json={"storage_key": created["storage_key"], "entity_type": "product", "entity_id": "p1"},
    )

    misspelled = client.post(
        "/v1/assets/entities/sync",
        json={"entity_type": "product", "entity_id": "p1", "storageKeys": [created["storage_key"]]},
    )
    neither = client.post("/v1/assets/entities/sync", json={"entity_type": "product", "entity_id": "p1"})
    both = client.post(
        "/v1/assets/entities/sync",
        json={"entity_type": "product", "entity_id": "p1", "storage_keys": [], "payload": {}},
    )

    assert misspelled.status_code == 422
    assert neither.status_code == 422
    assert both.status_code == 422
    owners = client.get(f"/v1/assets/{created['storage_key']}").json()["used_by"]
    assert owners == [{"entity_type": "product", "entity_id": "p1"}]


def test_entity_sync_explicit_empty_list_detaches(client):
    created = _upload(client, make_png(color=(23, 0, 0))).json()
    client.post(
        "/v1/assets/promote",
        json={"storage_key": created["storage_key"], "entity_type": "category", "entity_id": "c1"},
    )

    response = client.post(
        "/v1/assets/entities/sync",
        json={"entity_type": "category", "entity_id": "c1", "storage_keys": []},
    )

    assert response.status_code == 200
    assert response.json()["detached"] == [created["storage_key"]]
