import sys

from zip_converter.main import run

if __name__ == "__main__":
    sys.exit(run())
