"""Tests for spawn() argument handling and SpawnError classification."""

import errno
import os
import stat
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from piped_process import (
    Backend,
    Config,
    ProcessRegistrySingleton,
    ProcessState,
    SpawnError,
    SpawnErrorKind,
    spawn,
)
from piped_process import launcher
from piped_process.launcher import resolve_executable


class TestResolveExecutable(unittest.TestCase):
    def test_absolute_path(self):
        self.assertEqual(resolve_executable(sys.executable), sys.executable)

    def test_bare_name_uses_path(self):
        name = Path(sys.executable).name
        env_path = os.environ.get("PATH", "")
        os.environ["PATH"] = os.pathsep.join([str(Path(sys.executable).parent), env_path])
        self.addCleanup(os.environ.__setitem__, "PATH", env_path)
        self.assertTrue(os.path.isabs(resolve_executable(name)))

    def test_pathlike(self):
        self.assertEqual(resolve_executable(Path(sys.executable)), str(Path(sys.executable)))


class TestSpawnErrors(unittest.TestCase):
    def assertSpawnError(self, kind, executable, args=()):
        before = len(ProcessRegistrySingleton)
        with self.assertRaises(SpawnError) as cm:
            spawn(executable, args)
        self.assertEqual(cm.exception.kind, kind)
        self.assertEqual(len(ProcessRegistrySingleton), before)
        return cm.exception

    def test_missing_path(self):
        missing = os.path.join(tempfile.gettempdir(), "no_such_dir_12345", "prog")
        self.assertSpawnError(SpawnErrorKind.EXECUTABLE_NOT_FOUND, missing)

    def test_missing_bare_name(self):
        self.assertSpawnError(SpawnErrorKind.EXECUTABLE_NOT_FOUND, "this_command_does_not_exist_12345")

    def test_empty_name(self):
        self.assertSpawnError(SpawnErrorKind.EXECUTABLE_NOT_FOUND, "")

    def test_directory(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            self.assertSpawnError(SpawnErrorKind.PERMISSION_DENIED, temp_dir)

    @unittest.skipIf(os.name == "nt", "POSIX execute permission bits")
    def test_not_executable(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            script = Path(temp_dir) / "script.sh"
            script.write_text("#!/bin/sh\necho hi\n")
            script.chmod(stat.S_IRUSR | stat.S_IWUSR)
            if os.access(script, os.X_OK):
                self.skipTest("running with privileges that ignore permission bits")
            self.assertSpawnError(SpawnErrorKind.PERMISSION_DENIED, str(script))

    @unittest.skipIf(os.name == "nt", "POSIX exec format")
    def test_exec_format_error(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            binary = Path(temp_dir) / "garbage"
            binary.write_bytes(b"\x00\x01\x02\x03not an executable")
            binary.chmod(stat.S_IRWXU)
            err = self.assertSpawnError(SpawnErrorKind.OS_SPAWN_FAILURE, str(binary))
            self.assertIsNotNone(err.errno)

    def test_reader_setup_failure_rolls_back(self):
        created = []
        real_create_reader = launcher.create_reader

        def create_reader(stream, name, backend, config):
            if name == "stderr":
                raise OSError(errno.EMFILE, "Too many open files")
            reader = real_create_reader(stream, name, backend, config)
            created.append(reader)
            return reader

        with mock.patch.object(launcher, "create_reader", create_reader), mock.patch.object(
            launcher, "_discard", wraps=launcher._discard  # noqa: SLF001
        ) as discard:
            err = self.assertSpawnError(
                SpawnErrorKind.RESOURCE_EXHAUSTED, sys.executable, ["-c", "import time; time.sleep(30)"]
            )

        self.assertEqual(err.errno, errno.EMFILE)
        self.assertEqual(len(created), 1)
        self.assertTrue(created[0].closed)
        discard.assert_called_once()
        proc = discard.call_args.args[0]
        self.assertIsNotNone(proc.returncode)
        self.assertTrue(proc.stdin.closed)
        self.assertTrue(proc.stderr.closed)

    def test_string_args_rejected(self):
        with self.assertRaises(TypeError):
            spawn(sys.executable, "-c pass")  # type: ignore[arg-type]


class TestSpawn(unittest.TestCase):
    def test_handle_registered_until_closed(self):
        handle = spawn(sys.executable, ["-c", "pass"])
        self.assertIs(ProcessRegistrySingleton.lookup(handle.handle_id), handle)
        self.assertEqual(handle.command[0], sys.executable)
        handle.close()
        self.assertNotIn(handle, ProcessRegistrySingleton.list_active())

    def test_explicit_config(self):
        config = Config(backend=Backend.THREADED, poll_interval=0.005)
        with spawn(sys.executable, ["-c", "print('cfg')"], config=config) as handle:
            self.assertEqual(handle.wait(timeout=10), ProcessState.EXITED)
            self.assertEqual(handle.read(timeout=5).strip(), b"cfg")


if __name__ == "__main__":
    unittest.main()
