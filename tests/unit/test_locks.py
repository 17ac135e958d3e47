import threading
import time

from segmentation.locks import ReadWriteLock

WAIT_TIMEOUT = 2.0


def test_readers_share_the_lock():
    lock = ReadWriteLock()
    both_inside = threading.Barrier(2, timeout=WAIT_TIMEOUT)
    errors = []

    def reader():
        with lock.read_lock():
            try:
                # Deadlocks (and times out) unless both readers hold the lock
                both_inside.wait()
            except threading.BrokenBarrierError as e:
                errors.append(e)

    threads = [threading.Thread(target=reader) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(WAIT_TIMEOUT * 2)

    assert errors == []


def test_writer_waits_for_active_reader():
    lock = ReadWriteLock()
    events = []
    reader_inside = threading.Event()
    release_reader = threading.Event()

    def reader():
        with lock.read_lock():
            reader_inside.set()
            release_reader.wait(WAIT_TIMEOUT)
            events.append("reader done")

    def writer():
        with lock.write_lock():
            events.append("writer")

    r = threading.Thread(target=reader)
    r.start()
    assert reader_inside.wait(WAIT_TIMEOUT)

    w = threading.Thread(target=writer)
    w.start()
    time.sleep(0.05)
    assert events == []

    release_reader.set()
    r.join(WAIT_TIMEOUT)
    w.join(WAIT_TIMEOUT)
    assert events == ["reader done", "writer"]


def test_writer_blocks_readers_and_writers():
    lock = ReadWriteLock()
    events = []
    writer_inside = threading.Event()
    release_writer = threading.Event()

    def first_writer():
        with lock.write_lock():
            writer_inside.set()
            release_writer.wait(WAIT_TIMEOUT)
            events.append("first writer done")

    def reader():
        with lock.read_lock():
            events.append("reader")

    def second_writer():
        with lock.write_lock():
            events.append("second writer")

    w1 = threading.Thread(target=first_writer)
    w1.start()
    assert writer_inside.wait(WAIT_TIMEOUT)

    others = [threading.Thread(target=reader),
              threading.Thread(target=second_writer)]
    for t in others:
        t.start()
    time.sleep(0.05)
    assert events == []

    release_writer.set()
    for t in [w1, *others]:
        t.join(WAIT_TIMEOUT)
    assert events[0] == "first writer done"
    assert sorted(events[1:]) == ["reader", "second writer"]


def test_waiting_writer_is_not_starved_by_new_readers():
    lock = ReadWriteLock()
    lock.acquire_read()

    writer_done = threading.Event()
    late_reader_done = threading.Event()

    def writer():
        with lock.write_lock():
            writer_done.set()

    def late_reader():
        with lock.read_lock():
            late_reader_done.set()

    w = threading.Thread(target=writer)
    w.start()
    time.sleep(0.05)

    r = threading.Thread(target=late_reader)
    r.start()
    time.sleep(0.05)
    # The late reader queues behind the waiting writer
    assert not late_reader_done.is_set()

    lock.release_read()
    w.join(WAIT_TIMEOUT)
    r.join(WAIT_TIMEOUT)
    assert writer_done.is_set()
    assert late_reader_done.is_set()


def test_lock_released_after_exception():
    lock = ReadWriteLock()
    try:
        with lock.write_lock():
            raise RuntimeError("boom")
    except RuntimeError:
        pass

    acquired = threading.Event()

    def reader():
        with lock.read_lock():
            acquired.set()

    t = threading.Thread(target=reader)
    t.start()
    t.join(WAIT_TIMEOUT)
    assert acquired.is_set()
