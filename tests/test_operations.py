from dfs_simulator.storage.devices import ServerStorage
from dfs_simulator.storage.filesystem import FsFile
from dfs_simulator.storage.operations import OperationCallback, StorageOperationType


def _limit(bps):
    return lambda _time: bps


def test_device_speed_is_split_across_running_operations():
    storage = ServerStorage("disk", 1000, 1000)
    manager = storage.operation_manager
    slow = manager.add_unmanaged_read_operation([FsFile("a.bin", 10)], _limit(100))
    hungry = manager.add_unmanaged_read_operation([FsFile("b.bin", 10)], _limit(10000))

    manager.update_available_throughput(0)

    assert slow.available_throughput == 100
    assert hungry.available_throughput == 900


def test_unmanaged_write_reserves_space_until_removed():
    storage = ServerStorage("disk", 1000, 1000)
    manager = storage.operation_manager
    operation = manager.add_unmanaged_write_operation([FsFile("a.bin", 300)], _limit(100))

    assert operation.type is StorageOperationType.CLIENT_WRITE
    assert manager.reserved_space == 300
    manager.update_available_throughput(0)
    operation.remove_unmanaged()
    assert manager.reserved_space == 0
    assert not manager.has_operations()


def test_unmanaged_operations_do_not_progress_on_their_own():
    storage = ServerStorage("disk", 1000, 1000)
    manager = storage.operation_manager
    operation = manager.add_unmanaged_read_operation([FsFile("a.bin", 10)], _limit(1000))
    manager.update_available_throughput(0)
    manager.update_transferred_size(1000, 1000)

    assert operation.transferred_size == 0
    assert operation in manager.running


def test_chained_migrations_start_after_predecessor_finishes():
    fast = ServerStorage("fast", 1000, 1000)
    slow = ServerStorage("slow", 1000, 1000)
    finished = []
    started = []
    first_callback = OperationCallback(on_finished=lambda time: finished.append(("first", time)))
    second_callback = OperationCallback(on_started=lambda time: started.append(("second", time)))

    first_write, first_read = fast.operation_manager.add_migration_operation(
        [FsFile("a.bin", 100)], slow, first_callback
    )
    second_write, second_read = slow.operation_manager.add_migration_operation(
        [FsFile("b.bin", 100)], fast, second_callback, pending=True
    )
    first_write.add_following_operation(second_write)
    first_write.add_following_operation(second_read)

    for storage in (fast, slow):
        storage.operation_manager.update_available_throughput(0)
    assert first_write.available_throughput == 1000
    assert second_write in slow.operation_manager.pending

    fast.operation_manager.update_transferred_size(1000, 1000)

    assert finished == [("first", 1000)]
    assert not second_write.pending
    assert fast.operation_manager.reserved_space == 0

    slow.operation_manager.update_available_throughput(1000)
    assert second_write in slow.operation_manager.running
    assert started == [("second", 1000)]
    assert slow.operation_manager.reserved_space == 100


def test_finish_completes_every_queued_operation():
    fast = ServerStorage("fast", 1000, 1000)
    slow = ServerStorage("slow", 1000, 1000)
    done = []
    fast.operation_manager.add_migration_operation(
        [FsFile("a.bin", 100)], slow, OperationCallback(on_finished=done.append), pending=True
    )

    fast.operation_manager.finish(5000)

    assert done == [5000]
    assert not fast.operation_manager.has_operations()
