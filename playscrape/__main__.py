import sys

from playscrape.cli import main

sys.exit(main())
