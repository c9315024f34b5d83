import threading

import pytest

from hardalloc import platform
from hardalloc.platform import HybridMutex


def test_try_lock_fails_when_held():
    mutex = HybridMutex()
    assert mutex.try_lock() is True
    assert mutex.try_lock() is False
    mutex.unlock()
    assert mutex.try_lock() is True
    mutex.unlock()


def test_assert_held_raises_when_free():
    mutex = HybridMutex()
    with pytest.raises(RuntimeError):
        mutex.assert_held()


def test_context_manager_holds_lock():
    mutex = HybridMutex()
    with mutex as held:
        assert held is mutex
        mutex.assert_held()
        assert mutex.try_lock() is False
    assert mutex.try_lock() is True
    mutex.unlock()


def test_unlock_unheld_raises():
    mutex = HybridMutex()
    with pytest.raises(RuntimeError):
        mutex.unlock()


def test_mutex_serialises_threads():
    mutex = HybridMutex()
    counter = {"value": 0}
    contended = []

    def work():
        for _ in range(1000):
            with mutex:
                if mutex.try_lock():
                    contended.append(True)
                counter["value"] += 1

    threads = [threading.Thread(target=work) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert counter["value"] == 4000
    assert contended == []
    assert mutex.try_lock() is True
    mutex.unlock()


def test_page_size_is_power_of_two():
    size = platform.get_page_size()
    assert size > 0
    assert size & (size - 1) == 0


def test_get_env(monkeypatch):
    monkeypatch.setenv("HARDALLOC_TEST_VAR", "abc")
    assert platform.get_env("HARDALLOC_TEST_VAR") == "abc"
    monkeypatch.delenv("HARDALLOC_TEST_VAR")
    assert platform.get_env("HARDALLOC_TEST_VAR") is None


def test_monotonic_time_does_not_go_back():
    first = platform.get_monotonic_time()
    second = platform.get_monotonic_time()
    assert second >= first
    fast = platform.get_monotonic_time_fast()
    assert fast > 0


def test_number_of_cpus_is_not_negative():
    assert platform.get_number_of_cpus() >= 0


def test_thread_id_matches_native_id():
    assert platform.get_thread_id() == threading.get_native_id()


@pytest.mark.parametrize("length", [0, platform.MAX_RANDOM_LENGTH + 1, -1])
def test_get_random_rejects_bad_lengths(length):
    assert platform.get_random(length) is None


@pytest.mark.parametrize("length", [1, 16, platform.MAX_RANDOM_LENGTH])
def test_get_random_returns_requested_length(length):
    data = platform.get_random(length, blocking=True)
    assert isinstance(data, bytes)
    assert len(data) == length


def test_output_raw_writes_to_stderr(capsys):
    platform.output_raw("hello\n")
    captured = capsys.readouterr()
    assert captured.err == "hello\n"
    assert captured.out == ""