from asset_sync.scripts.run_pipeline import cli

cli()
