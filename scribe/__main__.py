from scribe.api.server import main

main()
