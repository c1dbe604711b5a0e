"""Tests for the collection repositories."""

import pytest

from attendance_kiosk.exceptions import StorageFailure
from attendance_kiosk.repository import MemoryRepository, PickleFileRepository


def test_pickle_repository_round_trip(tmp_path):
    repository = PickleFileRepository(str(tmp_path / 'data'))
    records = [{'id': 'a', 'embedding': [1.0, 2.0]}, {'id': 'b', 'embedding': [3.0, 4.0]}]

    repository.save_all('identities', records)

    assert PickleFileRepository(str(tmp_path / 'data')).load_all('identities') == records
    assert [p.name for p in (tmp_path / 'data').iterdir()] == ['identities.pkl']


def test_pickle_repository_missing_collection_is_empty(tmp_path):
    assert PickleFileRepository(str(tmp_path)).load_all('attendance') == []


def test_pickle_repository_corrupt_file(tmp_path):
    (tmp_path / 'attendance.pkl').write_bytes(b'not a pickle')
    with pytest.raises(StorageFailure):
        PickleFileRepository(str(tmp_path)).load_all('attendance')


def test_pickle_repository_unwritable_directory(tmp_path):
    blocker = tmp_path / 'blocker'
    blocker.write_text('a file where the directory should be')
    with pytest.raises(StorageFailure):
        PickleFileRepository(str(blocker / 'data')).save_all('identities', [])


def test_memory_repository_copies_records():
    repository = MemoryRepository()
    records = [{'id': 'a'}]
    repository.save_all('identities', records)
    records[0]['id'] = 'changed'

    loaded = repository.load_all('identities')
    assert loaded == [{'id': 'a'}]
    loaded[0]['id'] = 'changed again'
    assert repository.load_all('identities') == [{'id': 'a'}]
