"""flatdock: install Flatcar Container Linux on Hetzner Cloud servers."""
