#!/usr/bin/env python3
"""stackdock: CLI entrypoint."""

from stackdock.stackdock import main

if __name__ == "__main__":
    main()
