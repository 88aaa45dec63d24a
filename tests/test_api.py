"""Tests for the flat, id-based call interface and the handle registry."""

import contextlib
import gc
import os
import sys
import unittest

import psutil

from piped_process import HandleError, ProcessRegistry, ProcessRegistrySingleton, ProcessState, Stream, api
from piped_process.process_utils import get_process_tree_info

ECHO_SCRIPT = """
import sys
for line in iter(sys.stdin.buffer.readline, b''):
    if line.startswith(b'echo '):
        sys.stdout.buffer.write(line[5:])
        sys.stdout.buffer.flush()
"""


class TestApiById(unittest.TestCase):
    def release(self, handle_id):
        with contextlib.suppress(HandleError):
            api.close(handle_id)

    def test_id_alone_keeps_child_reachable(self):
        handle_id = api.spawn(sys.executable, ["-u", "-c", ECHO_SCRIPT]).handle_id
        self.addCleanup(self.release, handle_id)
        gc.collect()

        self.assertEqual(api.state(handle_id), ProcessState.RUNNING)
        self.assertEqual(api.write(handle_id, "echo 1\n"), 7)
        self.assertEqual(api.read(handle_id, Stream.STDOUT, 5.0), b"1\n")

        pid = ProcessRegistrySingleton.lookup(handle_id).pid
        api.close(handle_id)
        with self.assertRaises(HandleError):
            api.state(handle_id)
        self.assertFalse(psutil.pid_exists(pid) and psutil.Process(pid).status() != psutil.STATUS_ZOMBIE)

    def test_lifecycle_through_ids(self):
        handle = api.spawn(sys.executable, ["-u", "-c", ECHO_SCRIPT])
        self.addCleanup(handle.close)
        handle_id = handle.handle_id
        self.assertIs(ProcessRegistrySingleton.lookup(handle_id), handle)

        self.assertEqual(api.state(handle_id), ProcessState.RUNNING)
        self.assertEqual(api.write(handle_id, "echo 1\n"), 7)
        self.assertEqual(api.read(handle_id, Stream.STDOUT, 5.0), b"1\n")
        self.assertEqual(api.wait(handle_id, 0.1), ProcessState.RUNNING)
        self.assertIsNone(api.exit_status(handle_id))

        api.kill(handle_id)
        self.assertIn(api.wait(handle_id, 10), (ProcessState.TERMINATED, ProcessState.EXITED))
        self.assertIsNotNone(api.exit_status(handle_id))
        api.terminate(handle_id)

        api.close(handle_id)
        with self.assertRaises(HandleError):
            api.state(handle_id)

    def test_unknown_id(self):
        with self.assertRaises(HandleError):
            api.wait(987654321, 0)

    def test_accepts_handle_objects(self):
        handle = api.spawn(sys.executable, ["-c", "import sys; sys.exit(5)"])
        self.addCleanup(handle.close)
        self.assertEqual(api.wait(handle, 10), ProcessState.EXITED)
        self.assertEqual(api.exit_status(handle), 5)

    @unittest.skipIf(os.name == "nt", "POSIX signal names")
    def test_send_signal(self):
        handle = api.spawn(sys.executable, ["-c", "import time; time.sleep(30)"])
        self.addCleanup(handle.close)
        api.send_signal(handle.handle_id, "SIGTERM")
        self.assertEqual(api.wait(handle, 10), ProcessState.TERMINATED)


class TestProcessRegistry(unittest.TestCase):
    def test_register_lookup_unregister(self):
        registry = ProcessRegistry()
        handle = api.spawn(sys.executable, ["-c", "import time; time.sleep(30)"])
        self.addCleanup(handle.close)

        handle_id = registry.register(handle)
        self.assertIs(registry.lookup(handle_id), handle)
        self.assertEqual(registry.list_active(), [handle])
        registry.unregister(handle_id)
        with self.assertRaises(HandleError):
            registry.lookup(handle_id)

    def test_ids_are_unique(self):
        registry = ProcessRegistry()
        handle = api.spawn(sys.executable, ["-c", "pass"])
        self.addCleanup(handle.close)
        self.assertNotEqual(registry.register(handle), registry.register(handle))

    def test_release_all_kills_group_children(self):
        registry = ProcessRegistry()
        handle = api.spawn(sys.executable, ["-c", "import time; time.sleep(30)"])
        registry.register(handle)
        registry.release_all()
        self.assertTrue(handle.closed)
        self.assertTrue(handle.state.is_final)

    def test_dump_active_warns(self):
        registry = ProcessRegistry()
        handle = api.spawn(sys.executable, ["-c", "import time; time.sleep(30)"])
        self.addCleanup(handle.close)
        registry.register(handle)
        with self.assertWarns(UserWarning):
            registry.dump_active()

    def test_tree_info_mentions_pid(self):
        self.assertIn(str(os.getpid()), get_process_tree_info(os.getpid()))


if __name__ == "__main__":
    unittest.main()
