from pnpmlayer.cli import main

raise SystemExit(main())
