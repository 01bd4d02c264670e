from rgetlinks.cli import main

raise SystemExit(main())
