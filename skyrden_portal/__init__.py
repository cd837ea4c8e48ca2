# Copyright (C) 2024 Skyrden Portal Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Skyrden Airlines recruitment portal API."""

__version__ = "1.0.0"
