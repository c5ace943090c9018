from kafka_topic_operator.cli import app

app()
