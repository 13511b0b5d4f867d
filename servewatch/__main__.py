from servewatch.cli.app import main

main()
