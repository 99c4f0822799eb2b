from mcptools.cli import main

main()
