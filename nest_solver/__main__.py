# nest_solver/__main__.py
# Package entrypoint so you can run:
#   python -m nest_solver --help
#
# Examples:
#   python -m nest_solver --job job.json
#   python -m nest_solver --job job.json --algorithm Genetic --seed 7 --out out/

from __future__ import annotations

from .cli import main

if __name__ == "__main__":
    main()
