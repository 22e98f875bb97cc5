"""
Courtside - background automation for a community Discord bot.

Core Components:

- **Tier sync**: a weekly pass that reads the newest season tab of the ranking
  spreadsheet and moves each player into the tier role matching their score,
  posting a summary of every change to an audit thread
- **Onboarding reminders**: a durable, claim-based scheduler that sends a
  one-time reminder DM some time after a member finishes onboarding

Usage:
    from courtside.main import main
    main()
"""
