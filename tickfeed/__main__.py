from tickfeed.cli.main import main

main()
