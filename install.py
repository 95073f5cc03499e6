# !/usr/bin/env python3
# filename: install.py
# -*- coding: utf-8 -*-
"""
Entry point for the ML stack provisioner.

Usage: python3 install.py <install_path> <temp_path> [--config FILE] [--yes]
"""

import sys

from provisioner.main_installer import main

if __name__ == "__main__":
    sys.exit(main())
