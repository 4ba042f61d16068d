from csv_sheet_sync import cli

if __name__ == "__main__":
    cli.app()
