#!/usr/bin/env python3

from es3.cli import main


if __name__ == "__main__":
    main()
