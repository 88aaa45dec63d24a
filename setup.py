"""
Setup file.
"""

from pathlib import Path

from setuptools import setup

URL = "https://github.com/zackees/piped-process"
KEYWORDS = "subprocess pipes non-blocking signals child process"
HERE = Path(__file__).parent


if __name__ == "__main__":
    setup(
        maintainer="Zachary Vorhies",
        keywords=KEYWORDS,
        url=URL,
    )
