from jsonwebhooks.cli import main

raise SystemExit(main())
