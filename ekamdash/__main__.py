from ekamdash.cli.app import main

main()
