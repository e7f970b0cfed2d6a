from rich.text import Text

from backend.core.registrar import register_app
from backend.utils.console import console

console.print(Text('Starting service...', style='bold magenta'))

app = register_app()
