"""Cyclopts application and command routing for slicer_copilot CLI.

The CLI provides the following commands:
- optimize: Optimize a project archive
- inspect: Display the normalized project model
- validate: Validate an optimizer response file
- check-config: Validate configuration files
"""

from cyclopts import App

from slicer_copilot.cli import commands

app = App(
    name="slicer-copilot",
    help="Print settings optimizer for 3MF project archives",
    version="0.1.0",
)

app.command(commands.optimize)
app.command(commands.inspect)
app.command(commands.validate)
app.command(commands.check_config, name="check-config")
