"""CLI tools for Material Mapper.

- ``python -m material_mapper.cli.analyze`` - analyse a building strategy,
  print a text or JSON report and optionally write the connection diagram
  as SVG.
"""
