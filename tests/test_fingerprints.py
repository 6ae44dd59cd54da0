from buildcopy.core.builds import Build
from buildcopy.core.fingerprints import FingerprintMap


def test_get_or_create_keeps_first_origin():
    store = FingerprintMap()

    first = store.get_or_create(Build("a", 1), "x.jar", "d1")
    again = store.get_or_create(Build("b", 2), "y.jar", "d1")

    assert again is first
    assert first.original == ("a", 1)
    assert first.filename == "x.jar"


def test_save_and_load(tmp_path):
    store = FingerprintMap()
    record = store.get_or_create(Build("a", 1), "x.jar", "d1")
    record.associate(Build("a", 1))
    record.associate(Build("copier", 3))
    path = tmp_path / "fp" / "fingerprints.json"

    store.save(path)
    loaded = FingerprintMap.load(path)

    assert loaded.get("d1") == record


def test_load_missing_file_is_empty(tmp_path):
    assert len(FingerprintMap.load(tmp_path / "none.json")) == 0
