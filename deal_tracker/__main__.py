from deal_tracker.main import cli

cli()
