"""
presetdig — Preset Recovery & Magic Signature Utility
=====================================================
Recovers embedded plugin presets from project files and mines
file-type magic signatures from sample directories.
"""

__version__ = "1.0.0"
__author__ = "drixpyyy"
__license__ = "MIT"
__description__ = "Preset recovery and magic signature mining utility"
