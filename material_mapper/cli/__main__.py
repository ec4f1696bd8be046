# =============================================================================
# material_mapper/cli/__main__.py - Package Entry Point
# =============================================================================
#
# Running the package itself (`python -m material_mapper.cli`) delegates to
# the analyze command, the only CLI tool.
# =============================================================================

"""Allow ``python -m material_mapper.cli`` execution."""

from material_mapper.cli.analyze import main

main()
