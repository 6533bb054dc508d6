"""State persistence and durable storage tests."""

import json

import pytest

from promptmint.core.controller import AppStateController
from promptmint.core.persistence import MAX_AGE_MS, STORAGE_KEY, StatePersistence
from promptmint.errors import AppError
from promptmint.models import (
    AppState,
    ErrorKind,
    GenerationState,
    GenerationStatus,
    MintingState,
    MintingStatus,
    OperationType,
    PersistedSnapshot,
)
from promptmint.storage import MemoryStorage


class BrokenStorage:
    def get(self, key):
        raise OSError("disk unavailable")

    def set(self, key, value):
        raise OSError("disk full")


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def persistence(storage, clock):
    return StatePersistence(storage, clock=clock)


def completed_state(clock) -> AppState:
    return AppState(
        prompt="A cat on a windowsill",
        generated_image="https://x/img.jpg",
        token_uri="ipfs://h/metadata.json",
        generation_state=GenerationState(status=GenerationStatus.COMPLETED, progress=100),
        error=AppError(ErrorKind.NETWORK_ERROR, "offline", True).to_error_state(),
        is_loading=True,
        last_updated=clock(),
    )


class TestSave:
    def test_writes_camel_case_snapshot(self, persistence, storage, clock):
        persistence.save(completed_state(clock))

        data = json.loads(storage.get(STORAGE_KEY))
        assert data["prompt"] == "A cat on a windowsill"
        assert data["generatedImage"] == "https://x/img.jpg"
        assert data["tokenURI"] == "ipfs://h/metadata.json"
        assert data["generationState"] == {"status": "completed", "progress": 100, "error": None}
        assert data["lastUpdated"] == clock()

    def test_omits_loading_flag_and_active_error(self, persistence, storage, clock):
        persistence.save(completed_state(clock))

        data = json.loads(storage.get(STORAGE_KEY))
        assert "isLoading" not in data
        assert "error" not in data

    def test_storage_failure_is_swallowed(self, clock):
        persistence = StatePersistence(BrokenStorage(), clock=clock)

        persistence.save(completed_state(clock))


class TestLoad:
    def test_round_trip(self, persistence, clock):
        persistence.save(completed_state(clock))

        snapshot = persistence.load()

        assert snapshot is not None
        assert snapshot.prompt == "A cat on a windowsill"
        assert snapshot.token_uri == "ipfs://h/metadata.json"
        assert snapshot.generation_state.status == GenerationStatus.COMPLETED

    def test_missing_slot(self, persistence):
        assert persistence.load() is None

    def test_stale_snapshot_is_ignored(self, persistence, clock):
        persistence.save(completed_state(clock))
        clock.advance(MAX_AGE_MS + 1)

        assert persistence.load() is None

    def test_snapshot_at_age_limit_is_kept(self, persistence, clock):
        persistence.save(completed_state(clock))
        clock.advance(MAX_AGE_MS)

        assert persistence.load() is not None

    @pytest.mark.parametrize(
        "payload",
        [
            "{not json",
            "[]",
            '"a string"',
            json.dumps({"prompt": "no timestamp"}),
            json.dumps({"lastUpdated": 1_700_000_000_000, "generationState": {"status": "bogus"}}),
        ],
    )
    def test_malformed_payloads_are_ignored(self, persistence, storage, payload):
        storage.set(STORAGE_KEY, payload)

        assert persistence.load() is None

    def test_storage_read_failure_returns_none(self, clock):
        assert StatePersistence(BrokenStorage(), clock=clock).load() is None


class TestRehydrate:
    def test_attach_restores_then_mirrors(self, storage, clock):
        StatePersistence(storage, clock=clock).save(completed_state(clock))

        controller = AppStateController(clock=clock)
        detach = StatePersistence(storage, clock=clock).attach(controller)

        assert controller.state.token_uri == "ipfs://h/metadata.json"
        assert controller.state.error is None
        assert controller.state.is_loading is False

        controller.set_prompt("A dog on a skateboard")
        assert json.loads(storage.get(STORAGE_KEY))["prompt"] == "A dog on a skateboard"

        detach()
        controller.set_prompt("not saved")
        assert json.loads(storage.get(STORAGE_KEY))["prompt"] == "A dog on a skateboard"

    def test_in_flight_generation_restored_as_idle(self, storage, persistence, clock):
        snapshot = PersistedSnapshot(
            prompt="A cat",
            generation_state=GenerationState(status=GenerationStatus.GENERATING, progress=40),
            minting_state=MintingState(status=MintingStatus.MINING, tx_hash="0xabc"),
            last_updated=clock(),
        )
        storage.set(STORAGE_KEY, json.dumps(snapshot.to_json_dict()))
        controller = AppStateController(clock=clock)

        assert persistence.restore(controller) is True

        state = controller.state
        assert state.generation_state.status == GenerationStatus.IDLE
        assert state.minting_state.status == MintingStatus.IDLE
        assert state.error is None

    def test_history_survives_restart(self, storage, clock):
        controller = AppStateController(clock=clock)
        StatePersistence(storage, clock=clock).attach(controller)
        operation_id = controller.add_operation(OperationType.GENERATION, "A cat")

        restarted = AppStateController(clock=clock)
        StatePersistence(storage, clock=clock).attach(restarted)

        assert [item.id for item in restarted.state.operation_history] == [operation_id]

    def test_restore_without_snapshot(self, persistence, controller):
        assert persistence.restore(controller) is False


class TestSqlStorage:
    def test_get_missing(self, sql_storage):
        assert sql_storage.get("absent") is None

    def test_set_and_overwrite(self, sql_storage):
        sql_storage.set(STORAGE_KEY, "first")
        sql_storage.set(STORAGE_KEY, "second")

        assert sql_storage.get(STORAGE_KEY) == "second"

    def test_delete_is_idempotent(self, sql_storage):
        sql_storage.set(STORAGE_KEY, "value")

        assert sql_storage.delete(STORAGE_KEY) is True
        assert sql_storage.delete(STORAGE_KEY) is False
        assert sql_storage.get(STORAGE_KEY) is None

    def test_backs_state_persistence(self, sql_storage, clock):
        persistence = StatePersistence(sql_storage, clock=clock)
        persistence.save(completed_state(clock))

        snapshot = persistence.load()

        assert snapshot.generated_image == "https://x/img.jpg"
