#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
"""Allow `python3 -m pidlock <command>`."""

from pidlock.cli import main

if __name__ == "__main__":
    main()
