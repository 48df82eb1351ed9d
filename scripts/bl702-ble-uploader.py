#!/usr/bin/env python3
"""
BL702 BLE firmware uploader for PlatformIO.

PlatformIO.ini configuration:
    upload_protocol = custom
    upload_command = python scripts/bl702-ble-uploader.py $SOURCE -d
"""
from bl702dfu.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
