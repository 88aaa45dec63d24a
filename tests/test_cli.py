"""Test that the package imports in a fresh interpreter."""

import subprocess
import sys
import unittest


class TestImport(unittest.TestCase):
    """Import the package the way a caller would."""

    def test_imports(self) -> None:
        result = subprocess.run(  # noqa: S603
            [sys.executable, "-c", "import piped_process; print(piped_process.__version__)"],
            capture_output=True,
            text=True,
            check=False,
        )
        self.assertEqual(result.returncode, 0, result.stderr)
        self.assertTrue(result.stdout.strip())


if __name__ == "__main__":
    unittest.main()
